"""Tests for ARN construction and wildcard detection."""

from __future__ import annotations

import pytest

from crossdeploy.core import arns
from crossdeploy.core.arns import ArnConstructionError


class TestConcreteArns:
    def test_role_arn(self):
        assert (
            arns.role_arn("222222222222", "DeployRole")
            == "arn:aws:iam::222222222222:role/DeployRole"
        )

    def test_account_root_has_no_trailing_slash(self):
        assert arns.account_root_arn("111111111111") == "arn:aws:iam::111111111111:root"

    def test_kms_key_arn(self):
        assert (
            arns.kms_key_arn("us-east-1", "111111111111", "abc")
            == "arn:aws:kms:us-east-1:111111111111:key/abc"
        )

    def test_state_machine_arn(self):
        assert (
            arns.state_machine_arn("us-east-1", "111111111111", "DevSfnStackStateMachine")
            == "arn:aws:states:us-east-1:111111111111:stateMachine:DevSfnStackStateMachine"
        )

    def test_bucket_arns(self):
        assert arns.bucket_arn("artifacts") == "arn:aws:s3:::artifacts"
        assert arns.bucket_objects_arn("artifacts") == "arn:aws:s3:::artifacts/*"

    def test_stack_buckets_pattern_is_lower_cased(self):
        assert (
            arns.stack_buckets_pattern("KinesisApplicationStack")
            == "arn:aws:s3:::kinesisapplicationstack-*"
        )

    def test_stack_iam_patterns_keep_stack_case(self):
        assert (
            arns.stack_roles_pattern("222222222222", "IntTestSfnStack")
            == "arn:aws:iam::222222222222:role/IntTestSfnStack-*"
        )
        assert (
            arns.stack_policies_pattern("222222222222", "IntTestSfnStack")
            == "arn:aws:iam::222222222222:policy/IntTestSfnStack-*"
        )


class TestValidation:
    @pytest.mark.parametrize("account", ["", "12345", "abcdefghijkl", "1234567890123"])
    def test_bad_account_rejected(self, account: str):
        with pytest.raises(ArnConstructionError):
            arns.role_arn(account, "Role")

    @pytest.mark.parametrize("region", ["", "useast1", "US-EAST-1", "*"])
    def test_bad_region_rejected(self, region: str):
        with pytest.raises(ArnConstructionError):
            arns.kms_key_arn(region, "111111111111", "key")

    def test_empty_name_rejected(self):
        with pytest.raises(ArnConstructionError, match="Role name is required"):
            arns.role_arn("111111111111", "")

    def test_wildcard_name_rejected(self):
        with pytest.raises(ArnConstructionError, match="wildcards"):
            arns.role_arn("111111111111", "role*")

    def test_error_is_a_value_error(self):
        assert issubclass(ArnConstructionError, ValueError)


class TestIsWildcardResource:
    @pytest.mark.parametrize(
        "arn",
        [
            "*",
            "arn:aws:s3:::*",
            "arn:aws:iam::*:role/Deploy",
            "arn:aws:kinesis:*:111111111111:stream/x",
            "not-an-arn",
        ],
    )
    def test_wildcards(self, arn: str):
        assert arns.is_wildcard_resource(arn)

    @pytest.mark.parametrize(
        "arn",
        [
            "arn:aws:iam::111111111111:role/Deploy",
            "arn:aws:kinesis:us-east-1:111111111111:stream/*",
            "arn:aws:s3:::artifacts/*",
            "arn:aws:s3:::kinesisapplicationstack-*",
            "arn:aws:cloudformation:us-east-1:111111111111:stack/App/*",
        ],
    )
    def test_scoped_patterns_are_not_wildcards(self, arn: str):
        assert not arns.is_wildcard_resource(arn)
