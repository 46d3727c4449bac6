import unittest

from finance_api.config import SettingsError, load_settings, normalize_currency

SECRET = "x" * 32


class SettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = load_settings({"JWT_SECRET": SECRET})

        self.assertEqual(settings.database_url, "sqlite:///./finance.db")
        self.assertEqual(settings.default_currency, "USD")
        self.assertEqual(settings.jwt_expires_minutes, 60)
        self.assertEqual(settings.jwt_refresh_expires_days, 7)
        self.assertFalse(settings.debug)
        self.assertIsNone(settings.log_dir)

    def test_short_secret_refused(self) -> None:
        with self.assertRaises(SettingsError):
            load_settings({"JWT_SECRET": "short"})
        with self.assertRaises(SettingsError):
            load_settings({})

    def test_overrides(self) -> None:
        settings = load_settings(
            {
                "JWT_SECRET": SECRET,
                "DEFAULT_CURRENCY": "eur",
                "JWT_EXPIRES_MINUTES": "15",
                "DEBUG": "true",
                "LOG_LEVEL": "debug",
                "SEED_DEMO_DATA": "1",
            }
        )

        self.assertEqual(settings.default_currency, "EUR")
        self.assertEqual(settings.jwt_expires_minutes, 15)
        self.assertTrue(settings.debug)
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertTrue(settings.seed_demo_data)

    def test_invalid_numbers_and_currency(self) -> None:
        with self.assertRaises(SettingsError):
            load_settings({"JWT_SECRET": SECRET, "JWT_EXPIRES_MINUTES": "soon"})
        with self.assertRaises(SettingsError):
            load_settings({"JWT_SECRET": SECRET, "JWT_REFRESH_EXPIRES_DAYS": "0"})
        with self.assertRaises(SettingsError):
            load_settings({"JWT_SECRET": SECRET, "DEFAULT_CURRENCY": "EURO"})

    def test_normalize_currency(self) -> None:
        self.assertEqual(normalize_currency(" usd "), "USD")
        with self.assertRaises(ValueError):
            normalize_currency("U1D")


if __name__ == "__main__":
    unittest.main()
