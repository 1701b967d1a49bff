"""
Notification template engine with Jinja2 for email rendering.

Email templates live in ``src/templates/notifications`` as three files per
message: ``<name>_subject.txt``, ``<name>.html`` and an optional
``<name>.txt`` plain-text body.
"""

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent.parent.parent / "templates" / "notifications"


class TemplateEngineError(Exception):
    """Base exception for template engine errors."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message)
        self.template_name = template_name


class TemplateNotFoundError(TemplateEngineError):
    """Raised when a template cannot be found."""

    pass


class TemplateRenderError(TemplateEngineError):
    """Raised when template rendering fails."""

    pass


class TemplateEngine:
    """
    Template engine for rendering notification emails.

    Args:
        template_dir: Directory containing template files
        enable_autoescape: Enable autoescaping for HTML templates
    """

    def __init__(
        self,
        template_dir: Optional[str] = None,
        enable_autoescape: bool = True,
    ):
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]) if enable_autoescape else False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = format_currency
        self.env.filters["date"] = format_date

    def render_email(self, template_name: str, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render an email template.

        Args:
            template_name: Template base name (without suffix or extension)
            context: Variables available to the templates

        Returns:
            Dictionary containing 'subject', 'html_body' and, when a text
            template exists, 'text_body'

        Raises:
            TemplateNotFoundError: If the subject or HTML template is missing
            TemplateRenderError: If rendering fails
        """
        try:
            subject = self.env.get_template(f"{template_name}_subject.txt").render(**context).strip()
            html_body = self.env.get_template(f"{template_name}.html").render(**context)
        except TemplateNotFound as e:
            logger.error(
                "Email template not found",
                extra={"template_name": template_name, "error": str(e)},
            )
            raise TemplateNotFoundError(
                f"Email template not found: {template_name}",
                template_name=template_name,
            ) from e
        except TemplateError as e:
            logger.error(
                "Email template rendering failed",
                extra={"template_name": template_name, "error": str(e)},
            )
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

        result = {"subject": subject, "html_body": html_body}

        try:
            result["text_body"] = self.env.get_template(f"{template_name}.txt").render(**context)
        except TemplateNotFound:
            logger.debug(
                "Text template not found, using HTML only",
                extra={"template_name": template_name},
            )
        except TemplateError as e:
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

        return result


def format_currency(value: Any, symbol: str = "VND") -> str:
    """Format an amount with thousands separators, e.g. ``130,000 VND``."""
    if value is None:
        return ""
    amount = Decimal(str(value))
    if amount == amount.to_integral_value():
        return f"{amount:,.0f} {symbol}"
    return f"{amount:,.2f} {symbol}"


def format_date(value: Any, fmt: str = "%d/%m/%Y %H:%M") -> str:
    """Format a datetime (or ISO string) for display."""
    if value is None:
        return ""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime(fmt)
