"""Chital - desktop chat client for a local Ollama server.

Entry point for the application.
"""

import sys
import asyncio

from PySide6.QtWidgets import QApplication
from qasync import QEventLoop

from chital.config.logging_config import configure_logging
from chital.config.settings import settings
from chital.ui.main_window import MainWindow


def main() -> int:
    """Run the Chital application.

    Returns:
        Exit code
    """
    settings.ensure_dirs()
    configure_logging()

    # Create Qt application
    app = QApplication(sys.argv)
    app.setApplicationName("Chital")
    app.setApplicationVersion("0.1.0")

    # Set up asyncio event loop with Qt integration
    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)

    # Create and show main window
    window = MainWindow()
    window.show()

    # Run event loop
    with loop:
        return loop.run_forever()


if __name__ == "__main__":
    sys.exit(main())
