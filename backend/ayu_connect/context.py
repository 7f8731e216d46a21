from flask import current_app

EXTENSION_KEY = "ayu_connect"


class AppServices:
    """Everything a request handler needs, built once by ``create_app``."""

    def __init__(self, database, clock, storage, digilocker):
        self.database = database
        self.clock = clock
        self.storage = storage
        self.digilocker = digilocker


def get_services():
    return current_app.extensions[EXTENSION_KEY]
