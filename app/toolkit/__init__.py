"""
Toolkit - collaborator contracts and contact-detail utilities.

Key components:
    - protocols.py: NotificationSender and PaymentInitiator interfaces
    - validators.py: Ghana mobile number validation and network detection
    - helpers.py: PII masking for log output

Usage:
    from toolkit.protocols import NotificationSender, PaymentInitiator
    from toolkit.validators import normalize_ghana_phone
    from toolkit.helpers import mask_phone

Note:
    This app has no models.
"""
