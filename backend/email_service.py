"""
Service d'emails SendGrid pour XY CRM
- Code OTP de réinitialisation du mot de passe
- Notification d'un nouveau lead assigné
- Digest quotidien des follow-ups et visites AMS (9h)
"""

import os
import logging
from datetime import datetime, timezone
from html import escape
from typing import List
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from config import APP_URL, OTP_TTL_MINUTES

logger = logging.getLogger("email_service")

# Configuration
SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
SENDER_EMAIL = os.environ.get('SENDER_EMAIL', 'noreply@xy-crm.app')
SENDER_NAME = os.environ.get('SENDER_NAME', 'XY CRM')

BASE_STYLE = """
    body { font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5; }
    .container { max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }
    .header { background: #1E40AF; color: white; padding: 20px; text-align: center; }
    .header h1 { margin: 0; font-size: 22px; }
    .content { padding: 30px; }
    .code { font-size: 36px; letter-spacing: 8px; font-weight: bold; text-align: center; color: #1E40AF; margin: 20px 0; }
    table { width: 100%; border-collapse: collapse; margin-top: 10px; }
    th, td { text-align: left; padding: 8px; border-bottom: 1px solid #E5E7EB; font-size: 14px; }
    th { background: #F3F4F6; }
    .footer { background: #F9FAFB; padding: 15px; text-align: center; font-size: 12px; color: #6B7280; }
"""


def _layout(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head><style>{BASE_STYLE}</style></head>
    <body>
        <div class="container">
            <div class="header"><h1>{title}</h1></div>
            <div class="content">{body}</div>
            <div class="footer">XY CRM - {datetime.now(timezone.utc).strftime('%d/%m/%Y %H:%M')} UTC</div>
        </div>
    </body>
    </html>
    """


class EmailService:
    """Service centralisé pour l'envoi d'emails"""

    def __init__(self):
        self.api_key = SENDGRID_API_KEY
        self.sender = SENDER_EMAIL

    def _send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        """Envoie un email via SendGrid"""
        if not self.api_key:
            logger.error("SENDGRID_API_KEY non configurée")
            return False

        try:
            message = Mail(
                from_email=Email(self.sender, SENDER_NAME),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content)
            )

            sg = SendGridAPIClient(self.api_key)
            response = sg.send(message)

            if response.status_code in [200, 202]:
                logger.info(f"Email envoyé à {to_email}: {subject}")
                return True
            else:
                logger.error(f"Erreur envoi email: {response.status_code}")
                return False

        except Exception as e:
            logger.error(f"Exception envoi email: {str(e)}")
            return False

    # ==================== MOT DE PASSE ====================

    def send_otp(self, to_email: str, otp_code: str) -> bool:
        """Code OTP de réinitialisation (valide OTP_TTL_MINUTES minutes)"""
        body = f"""
            <p>You requested a password reset for your XY CRM account.</p>
            <div class="code">{escape(otp_code)}</div>
            <p>This code expires in {OTP_TTL_MINUTES} minutes. If you did not ask for it, ignore this e-mail.</p>
        """
        return self._send_email(to_email, "Your XY CRM password reset code", _layout("Password reset", body))

    # ==================== LEADS ====================

    def send_lead_assigned(self, to_email: str, employee_name: str, lead: dict) -> bool:
        """Prévient l'employé qu'un lead lui est assigné"""
        next_date = (lead.get("next_followup_date") or "")[:10]
        body = f"""
            <p>Hello {escape(employee_name or '')},</p>
            <p>A new lead has been assigned to you:</p>
            <table>
                <tr><th>Name</th><td>{escape(lead.get('name') or '')}</td></tr>
                <tr><th>Phone</th><td>{escape(lead.get('phone') or '')}</td></tr>
                <tr><th>Company</th><td>{escape(lead.get('company_name') or '-')}</td></tr>
                <tr><th>Priority</th><td>{escape(lead.get('priority') or '')}</td></tr>
                <tr><th>Next follow-up</th><td>{escape(next_date)}</td></tr>
            </table>
            <p><a href="{APP_URL}/dashboard/leads/lead-list">Open the lead list</a></p>
        """
        return self._send_email(to_email, f"New lead assigned: {lead.get('name', '')}", _layout("New lead", body))

    # ==================== DIGEST QUOTIDIEN ====================

    def send_daily_digest(self, to_email: str, employee_name: str,
                          leads: List[dict], visits: List[dict]) -> bool:
        """
        Digest du jour pour un employé.
        leads: leads dont le follow-up est dû aujourd'hui
        visits: visites AMS planifiées aujourd'hui (customer_name, product_name)
        """
        if not leads and not visits:
            return False

        lead_rows = "".join(
            f"<tr><td>{escape(l.get('name') or '')}</td><td>{escape(l.get('phone') or '')}</td>"
            f"<td>{escape(l.get('status') or '')}</td></tr>"
            for l in leads
        )
        visit_rows = "".join(
            f"<tr><td>{escape(v.get('customer_name') or '')}</td><td>{escape(v.get('product_name') or '')}</td>"
            f"<td>{escape(v.get('status') or '')}</td></tr>"
            for v in visits
        )
        body = f"""
            <p>Hello {escape(employee_name or '')}, here is your day:</p>
            <h3>Follow-ups due today ({len(leads)})</h3>
            <table><tr><th>Lead</th><th>Phone</th><th>Status</th></tr>{lead_rows}</table>
            <h3>AMS visits today ({len(visits)})</h3>
            <table><tr><th>Customer</th><th>Product</th><th>Status</th></tr>{visit_rows}</table>
            <p><a href="{APP_URL}/dashboard">Open the dashboard</a></p>
        """
        return self._send_email(to_email, "Your follow-ups for today", _layout("Daily follow-ups", body))


# Instance globale
email_service = EmailService()
