# main.py
import logging
import os
import sys
from pathlib import Path
import webview
from bridge import Api

def app_root() -> Path:
    """
    Retorna a raiz dos arquivos estáticos.
    - Em build PyInstaller one-file: usa a pasta temporária (sys._MEIPASS).
    - Em dev: usa a pasta onde está este arquivo.
    """
    meipass = getattr(sys, "_MEIPASS", None)  # evita aviso do type checker
    if meipass:
        return Path(meipass)
    return Path(__file__).resolve().parent

def setup_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def main() -> None:
    setup_logging()
    index_uri = (app_root() / "index.html").as_uri()  # gera "file:///C:/.../index.html"

    api = Api()

    webview.create_window(
        title="Imagem Fácil — Desktop",
        url=index_uri,           # abre via file://
        width=900,
        height=720,
        resizable=True,
        js_api=api,
    )

    webview.start(debug=os.getenv("WEBVIEW_DEBUG") == "1")

if __name__ == "__main__":
    main()
