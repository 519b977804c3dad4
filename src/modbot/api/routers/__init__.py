"""Route modules included by ``modbot.api.app.create_app``."""
