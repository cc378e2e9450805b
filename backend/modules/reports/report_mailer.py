"""E-mail delivery of scheduled report artifacts."""

import smtplib
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from backend.modules.logger import error, info, warning
from backend.modules.reports.report_config import SmtpConfig
from backend.modules.reports.report_errors import ReportServiceError


class ReportMailer:
    """Sends report files over SMTP. Does nothing when no SMTP host is configured."""

    def __init__(self, config: Optional[SmtpConfig] = None):
        self.config = config or SmtpConfig()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def send_report(
        self,
        recipients: List[str],
        subject: str,
        body: str,
        attachment_content: Optional[bytes] = None,
        attachment_filename: Optional[str] = None,
        mime_type: str = "application/octet-stream",
    ) -> bool:
        if not self.enabled:
            warning(f"[ReportMailer] SMTP not configured, skipping delivery to {', '.join(recipients)}")
            return False

        msg = MIMEMultipart()
        msg["From"] = f"{self.config.from_name} <{self.config.from_email}>"
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        if attachment_content is not None:
            maintype, _, subtype = mime_type.partition("/")
            part = MIMEBase(maintype or "application", subtype or "octet-stream")
            part.set_payload(attachment_content)
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", "attachment", filename=attachment_filename or "report")
            msg.attach(part)

        server = None
        try:
            server = smtplib.SMTP(self.config.host, self.config.port)
            if self.config.use_tls:
                server.starttls()
            if self.config.user and self.config.password:
                server.login(self.config.user, self.config.password)
            server.sendmail(self.config.from_email, recipients, msg.as_string())
            info(f"[ReportMailer] Email sent successfully to {', '.join(recipients)}")
            return True
        except (smtplib.SMTPException, OSError) as exc:
            error(f"[ReportMailer] Failed to send email: {exc}", exc_info=True)
            raise ReportServiceError(f"Failed to send email: {exc}", status_code=502, code="EMAIL_FAILED") from exc
        finally:
            if server is not None:
                try:
                    server.quit()
                except (smtplib.SMTPException, OSError):
                    pass
