"""CA bundle decoding for registration payloads."""

import base64
import binascii

from cryptography import x509


def parse_base64_ca_cert(encoded: str) -> bytes:
    """Decode a base64 CA bundle and check it holds PEM certificates.

    Raises ValueError when the value is not base64 or not a PEM bundle.
    """
    try:
        pem = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise ValueError("invalid base64 encoding") from exc
    x509.load_pem_x509_certificates(pem)
    return pem
