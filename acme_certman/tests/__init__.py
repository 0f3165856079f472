"""Unit tests and testing tools for the acme_certman package."""

TEST_DOMAINS = ["apps.example.com", "*.apps.example.com"]
TEST_EMAIL = "certman@example.com"
TEST_NAMESPACE = "certman-operator"
TEST_ACCOUNT_URL = "https://acme.test/acct/1"
