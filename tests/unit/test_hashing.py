import hashlib

from bridgebox.core.hashing import FILE_ID_LENGTH, calculate_file_id, hash_password


def test_file_id_is_deterministic():
    assert calculate_file_id("b1", "photo.jpg") == calculate_file_id("b1", "photo.jpg")


def test_file_id_depends_on_bucket_and_name():
    base = calculate_file_id("b1", "photo.jpg")
    assert calculate_file_id("b2", "photo.jpg") != base
    assert calculate_file_id("b1", "photo.png") != base


def test_file_id_shape():
    file_id = calculate_file_id("bucket", "name")
    assert len(file_id) == FILE_ID_LENGTH
    int(file_id, 16)  # hex


def test_hash_password_is_sha256_hex():
    assert hash_password("secret") == hashlib.sha256(b"secret").hexdigest()
