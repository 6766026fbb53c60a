"""Tests for URL structural heuristics."""

from guardian.analyzer.url_analyzer import UrlAnalyzer, analyze_url


class TestUrlAnalyzer:
    def test_clean_https_url(self):
        result = analyze_url("https://example.com/")
        assert result.risk_score == 0
        assert result.threats == ()
        assert result.source == "url"

    def test_ip_host_over_http(self):
        result = analyze_url("http://192.168.1.1/login")
        assert result.risk_score == 50
        assert "Uses IP address instead of domain" in result.threats
        assert "Insecure HTTP connection" in result.threats

    def test_suspicious_tld(self):
        result = analyze_url("https://free-prizes.tk/")
        assert result.risk_score == 25
        assert result.threats == ("Suspicious top-level domain",)

    def test_excessive_subdomains(self):
        result = analyze_url("https://a.b.c.d.example.com/")
        assert "Excessive subdomain usage" in result.threats
        assert result.risk_score == 15

    def test_three_subdomains_is_not_excessive(self):
        result = analyze_url("https://a.b.c.example.com/")
        assert "Excessive subdomain usage" not in result.threats

    def test_long_url(self):
        url = "https://example.com/" + "a" * 100
        result = analyze_url(url)
        assert result.threats == ("Unusually long URL",)
        assert result.risk_score == 10

    def test_malformed_url_fixed_penalty(self):
        for bad in ["not a url", "", "://missing-scheme", "http://"]:
            result = analyze_url(bad)
            assert result.risk_score == 20
            assert result.threats == ("Malformed URL structure",)

    def test_invalid_port_is_malformed(self):
        result = analyze_url("http://example.com:99999999/")
        assert result.threats == ("Malformed URL structure",)

    def test_custom_tlds(self):
        analyzer = UrlAnalyzer(suspicious_tlds=[".zip"])
        assert analyzer.analyze("https://invoice.zip/").risk_score == 25
        assert analyzer.analyze("https://free.tk/").risk_score == 0

    def test_never_raises_on_non_string(self):
        result = UrlAnalyzer().analyze(None)
        assert result.threats == ("Malformed URL structure",)
