"""
BIOMARK - Biometric Document Watermarking

Binds a fingerprint to a document by deriving a Fuzzy Vault secret from
fingerprint minutiae and embedding an invisible, zero-width-character
watermark carrying identity and content-integrity hashes into the
document's text (plain text or DOCX).
"""

__version__ = "1.0.0"
__author__ = "BIOMARK Team"
