"""Tests for domain reputation scoring."""

from guardian.analyzer.domain_reputation import DomainReputationAnalyzer
from guardian.analyzer.threat_intel import ThreatIntelStore, parse_indicator


class TestDomainReputation:
    def test_known_bad_domain(self):
        store = ThreatIntelStore(
            [parse_indicator({"indicator": "login-portal.example", "category": "phishing", "confidence": 95})]
        )
        result = DomainReputationAnalyzer(store).analyze("login-portal.example")
        assert result.risk_score == 95
        assert result.threats == ("Known phishing site",)

    def test_store_hit_and_keyword_are_additive(self, threat_store):
        result = DomainReputationAnalyzer(threat_store).analyze("fake-bank-login.net")
        assert result.risk_score == 130
        assert result.threats == (
            "Known phishing site",
            "Domain name contains suspicious keywords",
        )

    def test_keyword_only(self):
        result = DomainReputationAnalyzer(ThreatIntelStore()).analyze("secure-mybank-online.com")
        assert result.risk_score == 40
        assert result.threats == ("Domain name contains suspicious keywords",)

    def test_keyword_counted_once(self):
        result = DomainReputationAnalyzer(ThreatIntelStore()).analyze("fake-scam-fraud.com")
        assert result.risk_score == 40

    def test_clean_domain(self, threat_store):
        result = DomainReputationAnalyzer(threat_store).analyze("example.com")
        assert result.risk_score == 0
        assert result.threats == ()
        assert result.source == "domain"

    def test_uppercase_domain_matches(self, threat_store):
        result = DomainReputationAnalyzer(threat_store).analyze("SCAM-LOTTERY-WINNER.ORG")
        assert "Known scam site" in result.threats

    def test_sees_store_refresh(self, threat_store):
        analyzer = DomainReputationAnalyzer(threat_store)
        threat_store.replace([])
        assert analyzer.analyze("malicious-phishing-site.com").risk_score == 40
