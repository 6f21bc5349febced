"""Tests for warehouse_config: profile loading, validation and the policy bridge."""

from decimal import Decimal

import pytest

from warehouse_config import get_active_config
from warehouse_config.bridges import build_stock_policy
from warehouse_config.loader import compute_checksum, parse_settings
from warehouse_kernel.domain.policy import StockPolicy


class TestGetActiveConfig:
    def test_default_profile(self):
        settings = get_active_config("default")

        assert settings.profile == "default"
        assert settings.reservable_order_statuses == ("Shipping",)
        assert settings.over_capacity_ratio == Decimal("1.4")
        assert settings.allocation_grace_days == 60
        assert len(settings.checksum) == 64

    def test_missing_profile(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config("nope", config_dir=tmp_path)

    def test_custom_dir(self, tmp_path):
        (tmp_path / "strict.yaml").write_text(
            "reservable_order_statuses: [Processing, Shipping]\n"
            "over_capacity_ratio: 1\n"
            "require_invoice_for_finalize: false\n"
        )
        settings = get_active_config("strict", config_dir=tmp_path)

        assert settings.reservable_order_statuses == ("Processing", "Shipping")
        assert settings.over_capacity_ratio == Decimal("1")
        assert settings.require_invoice_for_finalize is False

    def test_empty_file_uses_defaults(self, tmp_path):
        (tmp_path / "blank.yaml").write_text("")
        assert get_active_config("blank", config_dir=tmp_path).max_page_limit == 200


class TestParseSettings:
    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown settings"):
            parse_settings("p", {"over_capacty_ratio": 2})

    @pytest.mark.parametrize(
        "data",
        [
            {"allocation_grace_days": "60"},
            {"default_page_limit": True},
            {"require_invoice_for_finalize": "yes"},
            {"over_capacity_ratio": "lots"},
            {"over_capacity_ratio": "0.5"},
            {"reservable_order_statuses": ["Delivered"]},
            {"reservable_order_statuses": []},
            {"default_page_limit": 500},
        ],
    )
    def test_invalid_values(self, data):
        with pytest.raises(ValueError):
            parse_settings("p", data)

    def test_single_status_string(self):
        assert parse_settings("p", {"reservable_order_statuses": "Processing"}).reservable_order_statuses == (
            "Processing",
        )


class TestChecksum:
    def test_key_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_value_sensitive(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


def test_build_stock_policy():
    settings = parse_settings(
        "p",
        {
            "reservable_order_statuses": ["Processing"],
            "allocation_grace_days": 30,
            "over_capacity_ratio": 1.2,
            "default_page_limit": 10,
            "max_page_limit": 20,
        },
    )
    policy = build_stock_policy(settings)

    assert isinstance(policy, StockPolicy)
    assert policy.reservable_order_statuses == frozenset({"Processing"})
    assert policy.allocation_grace_days == 30
    assert policy.over_capacity_ratio == Decimal("1.2")
    assert (policy.default_page_limit, policy.max_page_limit) == (10, 20)
    assert policy.finalize_order_status == "Delivered"
