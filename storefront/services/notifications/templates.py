"""
Jinja2 rendering of notification emails.

Each email template is a triple of files in the template directory:
``<name>_subject.txt``, ``<name>.html`` and an optional ``<name>.txt``.
"""

from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    Template,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from storefront.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "notifications"

CURRENCY_SYMBOLS = {"USD": "$", "BDT": "৳"}


class TemplateEngineError(Exception):
    """Base exception for template engine errors."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message)
        self.template_name = template_name


class TemplateNotFoundError(TemplateEngineError):
    pass


class TemplateRenderError(TemplateEngineError):
    pass


def format_currency(value: Union[Decimal, int, str], currency: str = "USD") -> str:
    """Render an amount with its currency symbol, e.g. ``$45.00``."""
    amount = Decimal(value).quantize(Decimal("0.01"))
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{symbol}{amount:,.2f}"


def format_date(value: Union[datetime, str]) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value.strftime("%B %d, %Y")


class TemplateEngine:
    """Loads and renders notification templates."""

    def __init__(self, template_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the template engine.

        Args:
            template_dir: Directory holding the templates. Defaults to
                the package's ``templates/notifications`` directory.
        """
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = format_currency
        self.env.filters["date"] = format_date

    def _load_template(self, template_path: str) -> Template:
        try:
            return self.env.get_template(template_path)
        except TemplateNotFound as e:
            raise TemplateNotFoundError(
                f"Template not found: {template_path}",
                template_name=template_path,
            ) from e

    def render_email(self, template_name: str, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render the subject and bodies of an email template.

        Args:
            template_name: Template base name (without suffix)
            context: Template variables

        Returns:
            Dictionary with ``subject``, ``html_body`` and ``text_body``.
            The text body falls back to the subject when no ``.txt``
            template exists.

        Raises:
            TemplateNotFoundError: If the subject or HTML template is missing
            TemplateRenderError: If rendering fails
        """
        try:
            subject = self._load_template(f"{template_name}_subject.txt").render(**context)
            html_body = self._load_template(f"{template_name}.html").render(**context)
            try:
                text_body = self._load_template(f"{template_name}.txt").render(**context)
            except TemplateNotFoundError:
                text_body = subject
        except TemplateNotFoundError:
            logger.error("Email template not found", template_name=template_name)
            raise
        except TemplateError as e:
            logger.error(
                "Email template rendering failed",
                template_name=template_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

        return {
            "subject": " ".join(subject.split()),
            "html_body": html_body,
            "text_body": text_body,
        }


@lru_cache
def get_template_engine() -> TemplateEngine:
    return TemplateEngine()
