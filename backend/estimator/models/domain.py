"""Plain domain records shared by the takeoff engines.

These are the in-memory shapes the pure compute path works on. Persistence
rows (``orm_models``) and API payloads (``takeoff_schema``) convert to and
from them at the edges.
"""
from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, List, Optional

# Detection classes recognised by the aggregators; anything else is "unclassified"
DETECTION_CLASSES = (
    "window",
    "door",
    "garage",
    "siding",
    "roof",
    "gable",
    "exterior_wall",
    "unclassified",
)

DETECTION_STATUSES = ("auto", "verified", "edited", "deleted")

LINE_ITEM_TYPES = ("material", "labor", "overhead", "paint")

# Aliases seen in model output and imported markups
_CLASS_ALIASES = {
    "windows": "window",
    "doors": "door",
    "garage_door": "garage",
    "garages": "garage",
    "wall": "exterior_wall",
    "exterior wall": "exterior_wall",
    "exterior-wall": "exterior_wall",
    "building": "exterior_wall",
    "gables": "gable",
    "roofs": "roof",
}


def normalize_class(raw: Optional[str]) -> str:
    """Map a raw detection class label onto one of DETECTION_CLASSES."""
    if not raw:
        return "unclassified"
    key = str(raw).strip().lower()
    key = _CLASS_ALIASES.get(key, key)
    return key if key in DETECTION_CLASSES else "unclassified"


def _pick(data: Dict[str, Any], cls) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class Page:
    id: str
    job_id: str
    page_number: int = 0
    page_type: str = "elevation"
    scale_ratio: Optional[float] = None     # real feet per pixel
    dpi: Optional[float] = None
    elevation_name: Optional[str] = None
    image_url: Optional[str] = None
    original_image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Page":
        return cls(**_pick(data, cls))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Detection:
    id: str
    page_id: str
    job_id: str = ""
    detection_class: str = "unclassified"
    detection_index: int = 0
    # Pixel bounding box (centre point + size)
    pixel_x: Optional[float] = None
    pixel_y: Optional[float] = None
    pixel_width: Optional[float] = None
    pixel_height: Optional[float] = None
    # [{x, y}, ...] or {"outer": [...], "holes": [[...], ...]}
    polygon_points: Optional[Any] = None
    is_triangle: bool = False
    status: str = "auto"
    confidence: Optional[float] = None
    # Derived real-world measurements
    real_width_in: Optional[float] = None
    real_height_in: Optional[float] = None
    real_width_ft: Optional[float] = None
    real_height_ft: Optional[float] = None
    area_sf: Optional[float] = None
    perimeter_lf: Optional[float] = None
    markup_type: str = "polygon"
    notes: Optional[str] = None

    def __post_init__(self):
        self.detection_class = normalize_class(self.detection_class)
        if self.status not in DETECTION_STATUSES:
            self.status = "auto"

    @property
    def is_deleted(self) -> bool:
        return self.status == "deleted"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Detection":
        payload = dict(data)
        if "class" in payload and "detection_class" not in payload:
            payload["detection_class"] = payload.pop("class")
        return cls(**_pick(payload, cls))

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["class"] = out.pop("detection_class")
        return out


@dataclass
class ElevationCalc:
    """Quantities for one elevation page. Always rebuilt from live detections."""
    page_id: str
    job_id: str
    elevation_name: Optional[str] = None
    # Counts
    window_count: int = 0
    door_count: int = 0
    garage_count: int = 0
    gable_count: int = 0
    roof_count: int = 0
    exterior_wall_count: int = 0
    class_counts: Dict[str, int] = field(default_factory=dict)
    # Areas (SF)
    gross_facade_sf: float = 0.0
    window_area_sf: float = 0.0
    door_area_sf: float = 0.0
    garage_area_sf: float = 0.0
    total_openings_sf: float = 0.0
    net_siding_sf: float = 0.0
    # Linear footage (LF)
    window_perimeter_lf: float = 0.0
    window_head_lf: float = 0.0
    window_jamb_lf: float = 0.0
    window_sill_lf: float = 0.0
    door_perimeter_lf: float = 0.0
    door_head_lf: float = 0.0
    door_jamb_lf: float = 0.0
    door_sill_lf: float = 0.0
    garage_head_lf: float = 0.0
    gable_rake_lf: float = 0.0
    roof_eave_lf: float = 0.0
    roof_rake_lf: float = 0.0
    # Metadata
    scale_ratio: Optional[float] = None
    dpi: Optional[float] = None
    confidence_avg: Optional[float] = None
    detection_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class JobTotals:
    job_id: str
    elevation_count: int = 0
    elevations_processed: List[str] = field(default_factory=list)
    total_windows: int = 0
    total_doors: int = 0
    total_garages: int = 0
    total_gables: int = 0
    total_gross_facade_sf: float = 0.0
    total_openings_sf: float = 0.0
    total_net_siding_sf: float = 0.0
    total_window_head_lf: float = 0.0
    total_window_jamb_lf: float = 0.0
    total_window_sill_lf: float = 0.0
    total_window_perimeter_lf: float = 0.0
    total_door_head_lf: float = 0.0
    total_door_jamb_lf: float = 0.0
    total_door_perimeter_lf: float = 0.0
    total_garage_head_lf: float = 0.0
    total_gable_rake_lf: float = 0.0
    total_roof_eave_lf: float = 0.0
    siding_squares: float = 0.0
    calculation_version: str = ""
    # page_id -> that elevation's contribution to every total above
    contributions: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobTotals":
        return cls(**_pick(data, cls))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LineItem:
    id: str
    description: str = ""
    item_type: Optional[str] = None
    quantity: float = 0.0
    unit: str = "EA"
    material_unit_cost: float = 0.0
    labor_unit_cost: float = 0.0
    equipment_unit_cost: float = 0.0
    section_id: Optional[str] = None
    presentation_group: Optional[str] = None
    sort_order: int = 0
    is_deleted: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        payload = _pick(data, cls)
        for key in ("quantity", "material_unit_cost", "labor_unit_cost", "equipment_unit_cost"):
            if payload.get(key) is None:
                payload[key] = 0.0
            else:
                payload[key] = float(payload[key])
        return cls(**payload)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
