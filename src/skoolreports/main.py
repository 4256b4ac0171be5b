import os

import flet as ft

from skoolreports.config.logging_setup import configure_logging
from skoolreports.ui.app import main


def run() -> None:
    configure_logging()
    web_mode = os.getenv("SKOOLREPORTS_WEB", "0") == "1"
    ft.app(
        target=main,
        view=ft.AppView.WEB_BROWSER if web_mode else ft.AppView.FLET_APP,
        port=int(os.getenv("PORT", "8550")),
    )


if __name__ == "__main__":
    run()
