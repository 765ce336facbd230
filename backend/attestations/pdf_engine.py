# attestations/pdf_engine.py
import io
import logging
from datetime import date, datetime

from django.conf import settings
from django.utils import dateformat, timezone, translation
from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .exceptions import NoActiveTemplate, RenderingError
from .layout import SAMPLE_DATA, Box, TemplateConfig

logger = logging.getLogger(__name__)

FONTS = {
    ("Helvetica", "normal"): "Helvetica",
    ("Helvetica", "bold"): "Helvetica-Bold",
    ("Times", "normal"): "Times-Roman",
    ("Times", "bold"): "Times-Bold",
    ("Courier", "normal"): "Courier",
    ("Courier", "bold"): "Courier-Bold",
}
DEFAULT_DATE_FORMAT = "d/m/Y"
ELLIPSIS = "..."


def font_name(field) -> str:
    return FONTS[(field.font_family, field.font_weight)]


def format_date(value, fmt=None) -> str:
    if value in (None, ""):
        return ""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    if isinstance(value, datetime):
        value = timezone.localtime(value).date() if timezone.is_aware(value) else value.date()
    with translation.override(settings.ATTESTATION_LOCALE):
        return dateformat.format(value, fmt or DEFAULT_DATE_FORMAT)


def ellipsize(text: str, font: str, size: float, max_width) -> str:
    """Tronque ``text`` avec "..." pour tenir dans ``max_width`` points."""
    if max_width is None or stringWidth(text, font, size) <= max_width:
        return text
    while text and stringWidth(text + ELLIPSIS, font, size) > max_width:
        text = text[:-1]
    return text.rstrip() + ELLIPSIS if text else ELLIPSIS


def field_text(field, value) -> str:
    if field.type == "date":
        body = format_date(value, field.format)
    else:
        body = "" if value is None else str(value)
    if not body:
        return ""
    return f"{field.prefix}{body}{field.suffix}"


def _available_width(field, page_width: float):
    if field.max_width:
        return field.max_width
    if field.width:
        return field.width
    if field.text_align == "right":
        return field.x
    if field.text_align == "center":
        return 2 * min(field.x, page_width - field.x)
    return page_width - field.x


def _draw_field(c, field, text: str, page_width: float, page_height: float) -> None:
    font = font_name(field)
    text = ellipsize(text, font, field.font_size, _available_width(field, page_width))
    c.setFont(font, field.font_size)
    c.setFillColor(HexColor(field.color))
    # origine éditeur en haut-gauche → repère PDF en bas-gauche (ligne de base)
    y_pdf = page_height - field.y - field.font_size
    if field.text_align == "center":
        x = field.x + field.width / 2 if field.width else field.x
        c.drawCentredString(x, y_pdf, text)
    elif field.text_align == "right":
        x = field.x + field.width if field.width else field.x
        c.drawRightString(x, y_pdf, text)
    else:
        c.drawString(field.x, y_pdf, text)


def _open_image(data: bytes, what: str) -> Image.Image:
    if not data:
        raise RenderingError(f"Image {what} absente")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise RenderingError(f"Image {what} illisible") from e
    return img


def _compose(config: TemplateConfig, background: bytes, values: dict, title: str, decorate=None) -> bytes:
    if config is None or not config.fields:
        raise NoActiveTemplate("Le template actif ne définit aucun champ")
    bg = _open_image(background, "de fond")

    w, h = config.page_width, config.page_height
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(w, h), invariant=1)
    c.setTitle(title)
    c.drawImage(ImageReader(bg.convert("RGB")), 0, 0, width=w, height=h)

    for field in config.text_fields:
        text = field_text(field, values.get(field.id))
        if text:
            _draw_field(c, field, text, w, h)

    if decorate:
        decorate(c, config)
    c.showPage()
    c.save()
    return buf.getvalue()


def render_unsigned(config: TemplateConfig, background: bytes, values: dict, numero: str) -> bytes:
    """PDF non signé : fond du template + champs texte/date.

    Les zones QR code et signature restent vides jusqu'à la signature.
    """
    values = dict(values)
    values.setdefault("numero", numero)
    pdf = _compose(config, background, values, f"Attestation {numero}")
    logger.info("Attestation %s composée (%d octets)", numero, len(pdf))
    return pdf


def render_preview(config: TemplateConfig, background: bytes) -> bytes:
    """Aperçu admin avec données fictives et zones QR/signature encadrées."""

    def _outline(c, cfg):
        c.setStrokeColor(HexColor("#c0392b"))
        c.setFillColor(HexColor("#c0392b"))
        c.setFont("Helvetica", 8)
        for label, box in (("QR code", cfg.qr_position), ("Signature", cfg.signature_position)):
            y_pdf = cfg.page_height - box.y - box.height
            c.rect(box.x, y_pdf, box.width, box.height, stroke=1, fill=0)
            c.drawString(box.x + 2, y_pdf + 2, label)

    return _compose(config, background, SAMPLE_DATA, "Aperçu attestation", decorate=_outline)


def render_signed(unsigned_pdf: bytes, signature, qr_png: bytes, signature_box: Box, qr_box: Box) -> bytes:
    """Appose la signature (image ou texte) et le QR code sur la première page.

    ``signature`` : bytes d'image, ou ``str`` pour la signature textuelle de repli.
    """
    try:
        reader = PdfReader(io.BytesIO(unsigned_pdf))
        first = reader.pages[0]
    except (PdfReadError, IndexError, ValueError) as e:
        raise RenderingError("Document non signé illisible") from e

    w = float(first.mediabox.width)
    h = float(first.mediabox.height)
    qr_img = _open_image(qr_png, "du QR code")

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(w, h), invariant=1)

    sb = signature_box
    sig_y = h - sb.y - sb.height
    if isinstance(signature, (bytes, bytearray)):
        sig_img = _open_image(bytes(signature), "de signature").convert("RGBA")
        c.drawImage(
            ImageReader(sig_img), sb.x, sig_y, width=sb.width, height=sb.height,
            mask="auto", preserveAspectRatio=True, anchor="c",
        )
    elif signature:
        size = min(sb.height * 0.5, 18)
        text = ellipsize(str(signature), "Helvetica-Oblique", size, sb.width)
        c.setFont("Helvetica-Oblique", size)
        c.setFillColor(HexColor("#1a237e"))
        c.drawCentredString(sb.x + sb.width / 2, sig_y + (sb.height - size) / 2, text)
    else:
        raise RenderingError("Aucune signature à apposer")

    qb = qr_box
    c.drawImage(ImageReader(qr_img.convert("RGB")), qb.x, h - qb.y - qb.height, width=qb.width, height=qb.height)
    c.showPage()
    c.save()
    buf.seek(0)

    overlay = PdfReader(buf).pages[0]
    writer = PdfWriter()
    for ix, page in enumerate(reader.pages):
        if ix == 0:
            page.merge_page(overlay)
        writer.add_page(page)
    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()
