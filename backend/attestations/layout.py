# attestations/layout.py
"""Configuration structurée des templates d'attestation.

Le JSON stocké dans ``TemplateAttestation.config`` est validé ici avant
tout rendu. Les coordonnées sont en points PDF, origine en haut à gauche
de la page (comme dans l'éditeur de templates).
"""
import re
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from .exceptions import TemplateInvalide

CONFIG_VERSION = 1

FIELD_TYPES = ("text", "date", "qrcode", "signature")
FONT_FAMILIES = ("Helvetica", "Times", "Courier")
FONT_WEIGHTS = ("normal", "bold")
TEXT_ALIGNS = ("left", "center", "right")
ORIENTATIONS = ("landscape", "portrait")

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float


@dataclass
class TemplateField:
    id: str
    label: str = ""
    type: str = "text"
    x: float = 0
    y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    max_width: Optional[float] = None
    font_size: float = 12
    font_family: str = "Helvetica"
    font_weight: str = "normal"
    color: str = "#000000"
    text_align: str = "left"
    format: Optional[str] = None
    prefix: str = ""
    suffix: str = ""

    @property
    def is_text(self) -> bool:
        return self.type in ("text", "date")


@dataclass
class TemplateConfig:
    version: int = CONFIG_VERSION
    page_width: float = 842
    page_height: float = 595
    orientation: str = "landscape"
    fields: List[TemplateField] = field(default_factory=list)
    signature_position: Box = Box(500, 100, 150, 60)
    qr_position: Box = Box(50, 500, 80, 80)

    @property
    def text_fields(self) -> List[TemplateField]:
        return [f for f in self.fields if f.is_text]

    def get_field(self, field_id: str) -> Optional[TemplateField]:
        return next((f for f in self.fields if f.id == field_id), None)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["fields"] = [asdict(f) for f in self.fields]
        return data

    @classmethod
    def from_dict(cls, data) -> "TemplateConfig":
        if not isinstance(data, dict):
            raise TemplateInvalide("La configuration doit être un objet JSON")
        version = data.get("version", CONFIG_VERSION)
        if version != CONFIG_VERSION:
            raise TemplateInvalide(f"Version de configuration non supportée : {version}")

        orientation = data.get("orientation", "landscape")
        if orientation not in ORIENTATIONS:
            raise TemplateInvalide(f"Orientation inconnue : {orientation}")

        page_width = _number(data.get("page_width", 842), "page_width", positive=True)
        page_height = _number(data.get("page_height", 595), "page_height", positive=True)

        fields = []
        seen = set()
        for raw in data.get("fields") or []:
            tf = _parse_field(raw)
            if tf.id in seen:
                raise TemplateInvalide(f"Identifiant de champ dupliqué : {tf.id}")
            seen.add(tf.id)
            fields.append(tf)

        sig = data.get("signature_position") or {}
        qr = data.get("qr_position") or {}
        qr_size = _number(qr.get("size", 80), "qr_position.size", positive=True)
        return cls(
            version=version,
            page_width=page_width,
            page_height=page_height,
            orientation=orientation,
            fields=fields,
            signature_position=Box(
                _number(sig.get("x", 500), "signature_position.x"),
                _number(sig.get("y", 100), "signature_position.y"),
                _number(sig.get("width", 150), "signature_position.width", positive=True),
                _number(sig.get("height", 60), "signature_position.height", positive=True),
            ),
            qr_position=Box(
                _number(qr.get("x", 50), "qr_position.x"),
                _number(qr.get("y", 500), "qr_position.y"),
                qr_size,
                qr_size,
            ),
        )

    def as_json(self) -> dict:
        """Forme stockée en base (``qr_position`` exprimé avec ``size``)."""
        data = self.to_dict()
        qr = data.pop("qr_position")
        data["qr_position"] = {"x": qr["x"], "y": qr["y"], "size": qr["width"]}
        return data


def _number(value, name, positive=False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TemplateInvalide(f"Valeur numérique attendue pour {name}")
    if positive and value <= 0:
        raise TemplateInvalide(f"{name} doit être strictement positif")
    return float(value)


def _optional_number(value, name):
    return None if value is None else _number(value, name, positive=True)


def _parse_field(raw) -> TemplateField:
    if not isinstance(raw, dict):
        raise TemplateInvalide("Chaque champ doit être un objet JSON")
    field_id = raw.get("id")
    if not field_id or not isinstance(field_id, str):
        raise TemplateInvalide("Champ sans identifiant")

    ftype = raw.get("type", "text")
    if ftype not in FIELD_TYPES:
        raise TemplateInvalide(f"Type de champ inconnu : {ftype}")
    family = raw.get("font_family", "Helvetica")
    if family not in FONT_FAMILIES:
        raise TemplateInvalide(f"Police inconnue : {family}")
    weight = raw.get("font_weight", "normal")
    if weight not in FONT_WEIGHTS:
        raise TemplateInvalide(f"Graisse inconnue : {weight}")
    align = raw.get("text_align", "left")
    if align not in TEXT_ALIGNS:
        raise TemplateInvalide(f"Alignement inconnu : {align}")
    color = raw.get("color", "#000000")
    if not isinstance(color, str) or not _HEX_COLOR.match(color):
        raise TemplateInvalide(f"Couleur invalide pour {field_id} : {color}")

    return TemplateField(
        id=field_id,
        label=str(raw.get("label", "")),
        type=ftype,
        x=_number(raw.get("x", 0), f"{field_id}.x"),
        y=_number(raw.get("y", 0), f"{field_id}.y"),
        width=_optional_number(raw.get("width"), f"{field_id}.width"),
        height=_optional_number(raw.get("height"), f"{field_id}.height"),
        max_width=_optional_number(raw.get("max_width"), f"{field_id}.max_width"),
        font_size=_number(raw.get("font_size", 12), f"{field_id}.font_size", positive=True),
        font_family=family,
        font_weight=weight,
        color=color,
        text_align=align,
        format=raw.get("format") or None,
        prefix=str(raw.get("prefix") or ""),
        suffix=str(raw.get("suffix") or ""),
    )


# Champs proposés par l'éditeur de templates, avec leur mise en forme par défaut
AVAILABLE_FIELDS = [
    {"id": "numero", "label": "Numéro d'attestation", "type": "text", "prefix": "N° "},
    {"id": "civilite", "label": "Civilité", "type": "text"},
    {"id": "prenom_nom", "label": "Prénom et nom", "type": "text", "font_weight": "bold"},
    {"id": "date_naissance", "label": "Date de naissance", "type": "date", "format": "d F Y", "prefix": "Né(e) le "},
    {"id": "lieu_naissance", "label": "Lieu de naissance", "type": "text", "prefix": "à "},
    {"id": "diplome", "label": "Diplôme", "type": "text", "prefix": "Titulaire d'"},
    {"id": "promotion", "label": "Promotion", "type": "text"},
    {"id": "lieu_service", "label": "Lieu de service", "type": "text"},
    {"id": "numero_arrete", "label": "Numéro d'arrêté", "type": "text"},
    {"id": "date_debut_service", "label": "Début du service", "type": "date", "format": "d/m/Y", "prefix": "Durant la période du "},
    {"id": "date_fin_service", "label": "Fin du service", "type": "date", "format": "d/m/Y", "prefix": "au "},
    {"id": "date_signature", "label": "Date de signature", "type": "date", "format": "d F Y", "prefix": "Niamey, le "},
    {"id": "nom_directeur", "label": "Nom du directeur", "type": "text", "text_align": "center", "font_weight": "bold"},
    {"id": "qrcode", "label": "QR Code", "type": "qrcode", "width": 80, "height": 80},
    {"id": "signature", "label": "Signature", "type": "signature", "width": 150, "height": 60},
]

# Valeurs fictives pour l'aperçu admin
SAMPLE_DATA = {
    "numero": "ATT-2026-00001",
    "civilite": "M.",
    "prenom_nom": "Ibrahim AMADOU",
    "date_naissance": "1995-05-15",
    "lieu_naissance": "Niamey",
    "diplome": "une Licence en Informatique",
    "promotion": "2024",
    "lieu_service": "Ministère de l'Éducation Nationale",
    "numero_arrete": "ARR-2024-017",
    "date_debut_service": "2024-01-01",
    "date_fin_service": "2024-12-31",
    "date_signature": "2026-01-15",
    "nom_directeur": "Le Directeur du Service Civique National",
}
