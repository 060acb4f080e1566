"""
DocGate - Credit-Metered Document Processing Gateway
====================================================

A FastAPI gateway in front of external document-processing operations
(QR masking/extraction, ID cropping, signature verification, face
detection/verification) that provides:
- Signed-token and API key authentication
- Prepaid credit balances with atomic settlement
- Background usage recording for analytics
- User-friendly translation of upstream failures
"""

__version__ = "1.0.0"
