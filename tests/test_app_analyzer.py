"""Tests for app-store listing analysis."""

import pytest

from guardian.analyzer.app_analyzer import (
    AppListing,
    AppListingAnalyzer,
    app_type,
    normalize_permission,
)
from guardian.constants import RiskLevel


@pytest.fixture
def analyzer():
    return AppListingAnalyzer()


class TestAppListing:
    def test_from_dict(self):
        listing = AppListing.from_dict(
            {
                "appId": "com.example.calc",
                "appName": "Calc",
                "developerName": "Example",
                "rating": "4.2",
                "reviewCount": None,
                "installCount": "10,000+",
                "permissions": ["android.permission.read_sms", "", "CAMERA"],
            }
        )
        assert listing.rating == 4.2
        assert listing.review_count == 0
        assert listing.permissions == ["READ_SMS", "CAMERA"]

    def test_normalize_permission(self):
        assert normalize_permission("android.permission.SEND_SMS") == "SEND_SMS"
        assert normalize_permission(" camera ") == "CAMERA"

    def test_app_type(self):
        assert app_type("GB WhatsApp") == "messaging"
        assert app_type("Step Tracker") == "fitness"
        assert app_type("Notes") is None


class TestPermissionRisk:
    def test_calculator_reading_sms(self):
        listing = AppListing(name="Calculator", permissions=["READ_SMS", "INTERNET"])
        suspicious, unusual, risk = AppListingAnalyzer.permission_risk(listing)
        assert suspicious == ["READ_SMS"]
        assert unusual == ["READ_SMS"]
        assert risk == 15 + 40 + 10

    def test_expected_permissions_are_not_unusual(self):
        listing = AppListing(name="Chat Now", permissions=["CAMERA", "RECORD_AUDIO"])
        suspicious, unusual, risk = AppListingAnalyzer.permission_risk(listing)
        assert suspicious == ["CAMERA", "RECORD_AUDIO"]
        assert unusual == []
        assert risk == 30

    def test_capped(self):
        listing = AppListing(
            name="Step Counter",
            permissions=["CAMERA", "READ_SMS", "SEND_SMS", "READ_CONTACTS", "CALL_PHONE", "DEVICE_ADMIN"],
        )
        assert AppListingAnalyzer.permission_risk(listing)[2] == 100


class TestDeveloperReputation:
    def test_short_all_caps(self):
        assert AppListingAnalyzer.developer_reputation("AB") == (50, ["All caps developer name"])

    def test_short_llc(self):
        assert AppListingAnalyzer.developer_reputation("Co LLC") == (70, ["Suspicious LLC name"])

    def test_hack_with_digits(self):
        assert AppListingAnalyzer.developer_reputation("crack4567")[0] == 5

    def test_floor(self):
        assert AppListingAnalyzer.developer_reputation("hack")[0] == 0
        assert AppListingAnalyzer.developer_reputation("h4ck999 hack")[0] == 5


class TestAppListingAnalyzer:
    def test_official_app_is_low(self, analyzer):
        listing = AppListing(
            app_id="com.whatsapp",
            name="WhatsApp Messenger",
            developer="WhatsApp LLC",
            rating=4.3,
            review_count=150_000_000,
            install_count="5,000,000,000+",
            permissions=["CAMERA", "INTERNET"],
        )
        result = analyzer.analyze(listing)
        assert result.risk_score == 12
        assert result.risk_level is RiskLevel.LOW
        assert result.clone_of is None
        assert result.clone_indicators == []
        assert result.categories == ["Privacy Risk"]
        assert result.recommendations == ["Review app permissions carefully before granting access"]

    def test_near_name_clone(self, analyzer):
        listing = AppListing(
            app_id="com.whatsapp.plus",
            name="WhatsApp Messengr",
            developer="WA Mods",
            permissions=["android.permission.READ_SMS", "CAMERA"],
        )
        result = analyzer.analyze(listing)
        assert result.clone_of == "WhatsApp Messenger"
        assert result.clone_indicators == [
            "Similar name to WhatsApp Messenger",
            "Different developer for similar app",
        ]
        assert result.unusual_permissions == ["READ_SMS"]
        assert result.permission_risk == 40
        assert result.risk_score == 37
        assert result.risk_level is RiskLevel.MEDIUM
        assert result.categories == ["App Clone", "Privacy Risk"]

    def test_high_risk_clone(self, analyzer):
        listing = AppListing(
            app_id="com.free.netflx",
            name="Netflx",
            developer="hak",
            rating=1.5,
            install_count="1,000,000+",
            permissions=[
                "READ_SMS",
                "SEND_SMS",
                "READ_CONTACTS",
                "CAMERA",
                "DEVICE_ADMIN",
                "INSTALL_PACKAGES",
                "READ_CALL_LOG",
            ],
        )
        result = analyzer.analyze(listing)
        assert result.metadata_flags == ["Low rating despite high install count"]
        assert result.risk_score == 62
        assert result.risk_level is RiskLevel.HIGH
        assert result.recommendations == [
            "Do not install this app",
            "Report this app to the app store",
            "Install the original app from the official developer instead",
            "Review app permissions carefully before granting access",
        ]

    def test_fleeceware_and_malware_names(self, analyzer):
        fleece = analyzer.analyze(AppListing(name="Horoscope Plus", developer="Stars Apps Ltd"))
        assert fleece.categories == ["Fleeceware"]
        assert fleece.metadata_flags == ["Potential fleeceware pattern"]
        assert "Be aware of hidden subscription fees" in fleece.recommendations

        malware = analyzer.analyze(AppListing(name="GB WhatsApp Pro", developer="Mods Team"))
        assert "Malware" in malware.categories
        assert "Contains malicious keywords" in malware.metadata_flags
        assert "Known clone app pattern" in malware.clone_indicators

    def test_to_dict(self, analyzer):
        data = analyzer.analyze(AppListing(app_id="a.b", name="Notes", developer="Notes Inc")).to_dict()
        assert data["appId"] == "a.b"
        assert data["riskLevel"] == "low"
        assert data["cloneDetection"]["isLikelyClone"] is False
