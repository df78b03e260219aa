import logging
import os
import sys
from pathlib import Path

from PyQt5.QtWidgets import QApplication

from OE_Libs.config import load_config
from OE_Libs.constants import CONFIG_FILE_NAME, LOG_LEVEL_ENV_VAR
from OE_Libs.EditorLib.eraser_window import EraserWindow


def main() -> None:
    logging.basicConfig(
        level=os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(Path.cwd() / CONFIG_FILE_NAME)

    app = QApplication(sys.argv)
    window = EraserWindow(config)
    window.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
