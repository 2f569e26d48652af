# bridge.py
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Any, Optional

import webview
from pydantic import ValidationError

from engine.controller import SizeTargetController
from engine.engine_config import SearchConfig
from engine.loader import b64_to_bytes, load_image
from engine.models import DecodedImage
from engine.naming import format_bytes, output_filename
from engine.schemas import ConvertIn, FileIn, LimitsIn
from engine.thumbs import image_thumb

log = logging.getLogger(__name__)

# ====== Estruturas ======
@dataclass
class SrcFile:
    name: str
    mime: str
    size_bytes: int
    image: DecodedImage

class Api:
    """
    Ponte JS <-> Python para o Imagem Fácil Desktop (sem servidor).
    Guarda apenas o arquivo atual da UI; o motor recebe tudo por parâmetro.
    """
    def __init__(self, controller: Optional[SizeTargetController] = None) -> None:
        self.controller = controller or SizeTargetController(SearchConfig.from_env())
        self.current: Optional[SrcFile] = None
        self._cancel = threading.Event()

    # ---------- helpers ----------
    def _ask_save_path(self, filename: str) -> Optional[str]:
        dlg = webview.windows[0].create_file_dialog(
            webview.FileDialog.SAVE,
            save_filename=filename,
        )
        if not dlg:
            return None
        return dlg if isinstance(dlg, str) else dlg[0]

    def _error(self, e: Exception) -> Dict[str, Any]:
        log.exception("falha na ponte: %s", e)
        if isinstance(e, ValidationError):
            return {'error': '; '.join(err['msg'] for err in e.errors())}
        return {'error': str(e)}

    # ---------- API: LOAD ----------
    def load(self, file: Dict[str, Any]) -> Dict[str, Any]:
        """
        file: { name, type (mime), bytes_b64 }
        Retorna: { name, original_size, width, height, preview }
        """
        try:
            f = FileIn.model_validate(file)
            if not f.type.startswith('image/'):
                return {'error': 'Please upload a valid image file.'}
            data = b64_to_bytes(f.bytes_b64)
            image = load_image(data)
            self.current = SrcFile(name=f.name, mime=f.type, size_bytes=len(data), image=image)
            preview, w, h = image_thumb(image.pixels)
            return {
                'name': f.name,
                'original_size': format_bytes(len(data)),
                'width': w, 'height': h,
                'preview': preview,
            }
        except Exception as e:
            return self._error(e)

    # ---------- API: LIMITS ----------
    def limits(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        payload: { format }
        Retorna: { limited, min_kb, max_kb, text }
        """
        try:
            if self.current is None:
                return {'error': 'Nenhuma imagem carregada.'}
            p = LimitsIn.model_validate(payload or {})
            lim = self.controller.probe_range(self.current.image, p.format)
            if lim is None:
                return {'limited': True, 'text': f'{p.format.extension.upper()} size targeting is limited'}
            lo, hi = round(lim.min_kb), round(lim.max_kb)
            return {
                'limited': False, 'min_kb': lo, 'max_kb': hi,
                'text': f'Est. Range: {lo}KB - {hi}KB (will resize if smaller)',
            }
        except Exception as e:
            return self._error(e)

    # ---------- API: CONVERT ----------
    def convert(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        payload: { format, target_kb }
        Roda a busca por tamanho-alvo e abre o diálogo de salvar.
        """
        try:
            # a busca é longa: load/reset podem trocar self.current no meio
            src = self.current
            if src is None:
                return {'error': 'Nenhuma imagem carregada.'}
            req = ConvertIn.model_validate(payload or {}).to_request()
            self._cancel.clear()
            res = self.controller.achieve_target(src.image, req, cancel_event=self._cancel)

            info = {
                'quality': round(res.quality, 3),
                'width': res.pixel_size.width, 'height': res.pixel_size.height,
                'estimated_kb': round(res.estimated_kb, 1),
                'target_reached': res.target_reached,
                'notice': res.notice,
            }

            save_path = self._ask_save_path(output_filename(src.name, req.format))
            if not save_path:
                return {'saved': False, 'path': None, **info}
            ext = '.' + req.format.extension
            if not str(save_path).lower().endswith(ext):
                save_path = str(save_path) + ext

            with open(save_path, 'wb') as f:
                f.write(res.artifact.data)

            return {'saved': True, 'path': save_path, **info}
        except Exception as e:
            return self._error(e)

    def cancel(self) -> Dict[str, Any]:
        self._cancel.set()
        return {'cancelled': True}

    def reset(self) -> Dict[str, Any]:
        self.current = None
        return {'reset': True}

