import pytest

from portal.app.payments.config import load_payments_config


def test_defaults_when_environment_is_empty():
    config = load_payments_config({})

    assert config.stripe_secret_key is None
    assert config.webhook_secret is None
    assert config.app_base_url == "http://localhost:3000"
    assert config.currency == "usd"
    assert config.provider_timeout_seconds == 10.0
    assert config.notification_retry_after_seconds == 300


def test_reads_values_and_builds_redirect_urls():
    config = load_payments_config(
        {
            "STRIPE_SECRET_KEY": "sk_test_1",
            "STRIPE_WEBHOOK_SECRET": "whsec_1",
            "NEXTAUTH_URL": "https://legal.example.com/",
            "PAYMENTS_CURRENCY": "EUR",
            "STRIPE_TIMEOUT_SECONDS": "2.5",
            "PAYMENT_NOTIFICATION_RETRY_AFTER": "60",
        }
    )

    assert config.stripe_secret_key == "sk_test_1"
    assert config.currency == "eur"
    assert config.provider_timeout_seconds == 2.5
    assert config.notification_retry_after_seconds == 60
    assert config.cancel_url == "https://legal.example.com/client/payments?canceled=true"
    assert config.success_url("Q1") == (
        "https://legal.example.com/client/payments/success?session_id={CHECKOUT_SESSION_ID}&quote_id=Q1"
    )


def test_app_base_url_takes_precedence():
    config = load_payments_config({"APP_BASE_URL": "https://a.test", "NEXTAUTH_URL": "https://b.test"})

    assert config.app_base_url == "https://a.test"


@pytest.mark.parametrize(
    "env",
    [
        {"PAYMENTS_CURRENCY": "dollars"},
        {"STRIPE_TIMEOUT_SECONDS": "0"},
        {"STRIPE_TIMEOUT_SECONDS": "soon"},
        {"PAYMENT_NOTIFICATION_RETRY_AFTER": "later"},
    ],
)
def test_invalid_values_are_rejected(env):
    with pytest.raises(ValueError):
        load_payments_config(env)
