from zoneinfo import available_timezones

from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _


def validate_timezone(value: str) -> None:
    """Reject names that are not IANA time zones."""
    if value not in available_timezones():
        raise ValidationError(_("%(value)s is not a valid IANA time zone."), params={"value": value})
