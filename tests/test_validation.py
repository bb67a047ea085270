from __future__ import annotations

import pytest

from s3core.storage.errors import InvalidBucketNameError, InvalidObjectNameError, ValidationError
from s3core.storage.validation import (
    is_valid_bucket_name,
    is_valid_object_name,
    validate_bucket_name,
    validate_object_name,
)


class TestBucketNames:
    @pytest.mark.parametrize("name", ["bucket", "abc", "my-bucket.logs", "a" * 63, "0day-archive"])
    def test_accepts_valid_names(self, name):
        validate_bucket_name(name)
        assert is_valid_bucket_name(name)

    @pytest.mark.parametrize(
        "name",
        [
            "",
            "   ",
            "ab",
            "a" * 64,
            "Bucket",
            "bucket$$$",
            "bucket??",
            "bucket.",
            "bucket-.",
            ".bucket",
            "-bucket",
            "my..bucket",
            "bucket_name",
            "bucket\n",
        ],
    )
    def test_rejects_invalid_names(self, name):
        with pytest.raises(InvalidBucketNameError):
            validate_bucket_name(name)
        assert not is_valid_bucket_name(name)

    def test_error_message_is_stable(self):
        with pytest.raises(InvalidBucketNameError) as excinfo:
            validate_bucket_name("bucket??")
        assert str(excinfo.value) == "The specified bucket is not valid."
        assert excinfo.value.bucket == "bucket??"
        assert excinfo.value.reason

    def test_non_string_is_rejected(self):
        with pytest.raises(InvalidBucketNameError):
            validate_bucket_name(None)

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_bucket_name("x")


class TestObjectNames:
    @pytest.mark.parametrize("name", ["object", "photos/2015/june.jpg", "a", "dir/", "ünïcode ключ", "k" * 1024])
    def test_accepts_valid_names(self, name):
        validate_object_name(name)
        assert is_valid_object_name(name)

    def test_rejects_empty_name(self):
        with pytest.raises(InvalidObjectNameError):
            validate_object_name("")

    def test_length_is_measured_in_utf8_bytes(self):
        # 512 two-byte characters fit exactly; one more does not.
        validate_object_name("é" * 512)
        with pytest.raises(InvalidObjectNameError):
            validate_object_name("é" * 513)

    def test_rejects_control_characters(self):
        assert not is_valid_object_name("bad\x00name")
        assert not is_valid_object_name("line\nbreak")

    def test_errors_share_the_validation_base(self):
        with pytest.raises(ValidationError):
            validate_object_name("")
