"""メール通知モジュール

HTMLレポートをSMTPで送信する。
接続情報は config/.env の SMTP_* / MAIL_* から読み込む。
"""

import logging
import os
import smtplib
import ssl
from datetime import datetime
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import click

from src.report.html_report import DEFAULT_TIMEZONE, format_local

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "Reporte Monitor ML"

CONFIRM_ANSWERS = ("s", "si", "sí", "y", "yes")


def split_addresses(value: Optional[str]) -> List[str]:
    """カンマ区切りのアドレス文字列をリストに"""
    return [a.strip() for a in (value or "").split(",") if a.strip()]


def default_subject(now: Optional[datetime] = None,
                    tz: str = DEFAULT_TIMEZONE) -> str:
    """デフォルト件名: Reporte Monitor ML - 19/10/26, 10:30"""
    return "{} - {}".format(
        SUBJECT_PREFIX, format_local(now or datetime.now().astimezone(), "short", tz)
    )


def is_interactive() -> bool:
    """MAIL_INTERACTIVE=true なら送信前に確認プロンプトを出す"""
    return os.environ.get("MAIL_INTERACTIVE", "false").strip().lower() == "true"


class EmailNotifier:
    """SMTPメール送信"""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        secure: Optional[bool] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        to: Optional[List[str]] = None,
        cc: Optional[List[str]] = None,
    ):
        self.host = host or os.environ.get("SMTP_HOST", "")
        port_value = port or os.environ.get("SMTP_PORT", "")
        self.user = user if user is not None else os.environ.get("SMTP_USER", "")
        self.password = (
            password if password is not None else os.environ.get("SMTP_PASS", "")
        )
        self.sender = sender or os.environ.get("MAIL_FROM", "")
        self.to = to if to is not None else split_addresses(os.environ.get("MAIL_TO"))
        self.cc = cc if cc is not None else split_addresses(os.environ.get("MAIL_CC"))
        if secure is None:
            secure = os.environ.get("SMTP_SECURE", "false").strip().lower() == "true"
        self.secure = secure

        missing = []
        if not self.host:
            missing.append("SMTP_HOST")
        if not port_value:
            missing.append("SMTP_PORT")
        if not self.sender:
            missing.append("MAIL_FROM")
        if not self.to:
            missing.append("MAIL_TO")
        if missing:
            raise ValueError(
                "{} が設定されていません。"
                "config/.env に追加してください。".format("/".join(missing))
            )

        try:
            self.port = int(port_value)
        except ValueError:
            raise ValueError("SMTP_PORT が数値ではありません: {}".format(port_value))

    def build_message(
        self,
        html: str,
        subject: str,
        attachments: Optional[List[Union[str, Path]]] = None,
    ) -> MIMEMultipart:
        """HTML本文 + 添付ファイルのメッセージを組み立て"""
        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.to)
        if self.cc:
            msg["Cc"] = ", ".join(self.cc)

        msg.attach(MIMEText(html, "html", "utf-8"))

        for attachment in attachments or []:
            path = Path(attachment)
            if not path.exists():
                logger.warning(f"添付ファイルが見つかりません: {path}")
                continue
            part = MIMEApplication(path.read_bytes(), Name=path.name)
            part["Content-Disposition"] = 'attachment; filename="{}"'.format(path.name)
            msg.attach(part)

        return msg

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.secure:
            return smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=30)
        server = smtplib.SMTP(self.host, self.port, timeout=30)
        server.ehlo()
        if server.has_extn("starttls"):
            server.starttls(context=context)
            server.ehlo()
        return server

    def send_report(
        self,
        html: str,
        subject: str,
        attachments: Optional[List[Union[str, Path]]] = None,
    ) -> Dict[str, Any]:
        """レポートメールを送信

        Returns:
            {"success": bool, "recipients": list}
        """
        msg = self.build_message(html, subject, attachments)
        recipients = self.to + self.cc

        with self._connect() as server:
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.sender, recipients, msg.as_string())

        logger.info(f"レポート送信: {subject} → {', '.join(recipients)}")
        return {"success": True, "recipients": recipients}


def prompt_subject_and_confirm(
    subject: str,
    to: List[str],
    cc: List[str],
) -> Dict[str, Any]:
    """送信前に宛先を表示し、件名の編集と送信確認を求める

    Returns:
        {"subject": str, "ok": bool}
    """
    click.echo("\n✉️  Previa de envío de email")
    click.echo("   Para: {}".format(", ".join(to) or "(sin TO)"))
    click.echo("   CC  : {}".format(", ".join(cc) or "(sin CC)"))
    click.echo("   Asunto (enter para aceptar sugerido)")

    typed = click.prompt(
        "> {}\n>".format(subject), default="", show_default=False
    )
    final_subject = (typed or "").strip() or subject

    answer = click.prompt(
        "¿Confirmás el envío? (s/N)", default="", show_default=False
    )
    ok = answer.strip().lower() in CONFIRM_ANSWERS

    return {"subject": final_subject, "ok": ok}
