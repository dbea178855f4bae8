"""Fingerprint hooks."""

from artifact_archiver.fingerprint.hooks import FingerprintHook, Md5FingerprintRecorder, md5_of

__all__ = [
    "FingerprintHook",
    "Md5FingerprintRecorder",
    "md5_of",
]
