# certchain/services/image_store.py

import mimetypes
import os
import time

from flask import current_app
from werkzeug.utils import secure_filename


def image_folder() -> str:
    folder = os.path.join(current_app.instance_path, 'certificates')
    os.makedirs(folder, exist_ok=True)
    return folder


def save_certificate_image(payload: bytes, mimetype: str, cert_id: str) -> str:
    """Stores a registered certificate's image and returns the stored file name."""
    extension = mimetypes.guess_extension(mimetype) or '.bin'
    filename = secure_filename(f"{cert_id}_{int(time.time() * 1000)}{extension}")
    with open(os.path.join(image_folder(), filename), 'wb') as f:
        f.write(payload)
    return filename
