""" Utility for identifier hashing operations. """

import hashlib


FILE_ID_LENGTH = 24  # hex chars, the bridge's object id width


def calculate_file_id(bucket_id: str, filename: str) -> str:

    # Deterministic file id: same bucket and name always map to the same id.

    digest = hashlib.sha256(hashlib.sha256((bucket_id + filename).encode("utf-8")).digest())
    return digest.hexdigest()[:FILE_ID_LENGTH]


def hash_password(password: str) -> str:
    # the bridge expects basic-auth passwords as a sha256 hex digest
    return hashlib.sha256(password.encode("utf-8")).hexdigest()
