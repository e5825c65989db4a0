"""
Validators and input helpers shared by models and serializers.
"""

import html
import re
from urllib.parse import urlparse

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import URLValidator


IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp', '.svg')
UPLOAD_EXTENSIONS = ('jpg', 'jpeg', 'png', 'webp')
UPLOAD_CONTENT_TYPES = ('image/jpeg', 'image/png', 'image/webp')
MAX_UPLOAD_SIZE = 5 * 1024 * 1024

PICKUP_CODE_RE = re.compile(r'^\d{6}$')

_url_validator = URLValidator(schemes=['http', 'https'])


def validate_phone_number(value):
    """
    Validate phone number format.

    Accepts an optional leading plus sign followed by digits, spaces, dashes
    and parentheses, with at least 10 digits overall.

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:  # Optional field
        return

    if not re.match(r'^\+?[\d\s\-\(\)]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces, dashes, parentheses, and a leading plus sign.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10:
        raise ValidationError(
            'Phone number must contain at least 10 digits.',
            code='phone_too_short'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def validate_profile_image(image):
    """
    Validate an uploaded avatar file.

    Checks size (max 5MB), extension and, when the upload carries one,
    the declared content type.
    """
    if not image:
        return

    if image.size > MAX_UPLOAD_SIZE:
        raise ValidationError(
            f'Image file size cannot exceed 5MB. Current size: {image.size / (1024 * 1024):.2f}MB',
            code='image_too_large'
        )

    file_name = image.name.lower()
    if not any(file_name.endswith(f'.{ext}') for ext in UPLOAD_EXTENSIONS):
        raise ValidationError(
            f'Invalid image format. Allowed formats: {", ".join(UPLOAD_EXTENSIONS)}',
            code='invalid_image_format'
        )

    content_type = getattr(image, 'content_type', None)
    if content_type and content_type not in UPLOAD_CONTENT_TYPES:
        raise ValidationError(
            f'Invalid image content type: {content_type}',
            code='invalid_content_type'
        )


def is_valid_image_url(url):
    """Return True for an http(s) URL that points at an image file."""
    if not isinstance(url, str) or not url:
        return False
    try:
        _url_validator(url)
    except ValidationError:
        return False
    path = urlparse(url).path.lower()
    return any(ext in path for ext in IMAGE_EXTENSIONS)


def validate_image_urls(value, min_count=0, max_count=None, field_label='image'):
    """
    Validate a list of image URLs.

    Args:
        value: List of URL strings
        min_count: Minimum number of URLs required
        max_count: Maximum number of URLs allowed (None for no limit)
        field_label: Word used in error messages

    Raises:
        ValidationError: If the list or any entry is invalid
    """
    if value is None:
        value = []

    if not isinstance(value, (list, tuple)):
        raise ValidationError(f'{field_label.capitalize()} URLs must be a list.', code='invalid_type')

    if len(value) < min_count:
        noun = field_label if min_count == 1 else f'{field_label}s'
        raise ValidationError(f'At least {min_count} {noun} required.', code='too_few')

    if max_count is not None and len(value) > max_count:
        raise ValidationError(
            f'Maximum {max_count} {field_label} URLs allowed.',
            code='too_many'
        )

    for url in value:
        if not is_valid_image_url(url):
            raise ValidationError(
                f'Invalid {field_label} URL: {url}',
                code='invalid_image_url'
            )


def validate_listing_images(value):
    """Model-level check for listing image lists."""
    validate_image_urls(value, min_count=1)


def validate_evidence_urls(value):
    """Model-level check for dispute evidence lists."""
    validate_image_urls(value, max_count=5, field_label='evidence')


def validate_pickup_code(value):
    """Pickup codes are exactly six digits."""
    if not value or not PICKUP_CODE_RE.match(str(value)):
        raise ValidationError('Pickup code must be 6 digits.', code='invalid_pickup_code')


def sanitize_text(value):
    """
    Strip surrounding whitespace and HTML-escape user supplied text for
    rendering. Stored text is kept as entered.

    Non-string values are returned unchanged.
    """
    if not isinstance(value, str):
        return value
    return html.escape(value.strip(), quote=True)


def is_college_email(email):
    """
    Check whether an e-mail address belongs to a recognised college domain.

    A domain matches when it is listed in MARKETPLACE['COLLEGE_EMAIL_DOMAINS']
    or ends with one of MARKETPLACE['COLLEGE_EMAIL_SUFFIXES'].
    """
    if not email or not isinstance(email, str) or '@' not in email:
        return False

    domain = email.lower().rsplit('@', 1)[1]
    if not domain:
        return False

    config = settings.MARKETPLACE
    if domain in [d.lower() for d in config.get('COLLEGE_EMAIL_DOMAINS', [])]:
        return True

    return any(domain.endswith(suffix) for suffix in config.get('COLLEGE_EMAIL_SUFFIXES', []))
