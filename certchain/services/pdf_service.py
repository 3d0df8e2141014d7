# certchain/services/pdf_service.py

import pypdfium2 as pdfium
import cv2
import numpy as np
from flask import current_app

def pdf_bytes_to_image(payload: bytes):
    """
    Renders the first page of an in-memory PDF into an OpenCV image.
    Returns (image, page_count); image is None when the PDF cannot be read.
    """
    pdf = None
    try:
        pdf = pdfium.PdfDocument(payload)
        page_count = len(pdf)
        if page_count == 0:
            return None, 0

        page = pdf[0]
        pil_image = page.render(scale=2).to_pil()
        image = cv2.cvtColor(np.array(pil_image), cv2.COLOR_RGB2BGR)
        return image, page_count

    except pdfium.PdfiumError as e:
        current_app.logger.warning(f"Could not render uploaded PDF: {e}")
        return None, 0

    finally:
        # Always release the native document handle.
        if pdf is not None:
            pdf.close()
