"""Centralized configuration for SizeFit.

Single source of truth for measurement relevance, fabric tolerances, header
synonyms, size ordering, score thresholds and job timings. Every module that
needs one of these tables should import it from here.
"""
from __future__ import annotations

# ── Measurement relevance per garment type ─────────────────────────────
# Used by: scoring.measurements (relevance model), the vision prompt.
# primary = critical to fit, secondary = nice to have. Names are the
# canonical chart keys (see scoring.measurements.Measurement).

GARMENT_MEASUREMENTS = {
    "t-shirt":      {"primary": ["chest", "waist", "shoulder"],
                     "secondary": ["armLength"]},
    "pants":        {"primary": ["waist", "hip", "inseam"],
                     "secondary": ["thighCircumference"]},
    "dress":        {"primary": ["chest", "waist", "hip"],
                     "secondary": ["shoulder", "thighCircumference"]},
    "jacket":       {"primary": ["chest", "shoulder", "armLength"],
                     "secondary": ["waist"]},
    "formal-shirt": {"primary": ["chest", "shoulder", "armLength"],
                     "secondary": ["waist"]},
    "shorts":       {"primary": ["waist", "hip"],
                     "secondary": ["thighCircumference"]},
    "skirt":        {"primary": ["waist", "hip"],
                     "secondary": ["thighCircumference"]},
}

# Common spellings that share a relevance row with a canonical garment.
GARMENT_ALIASES = {
    "tshirt": "t-shirt",
    "t shirt": "t-shirt",
    "shirt": "t-shirt",
    "top": "t-shirt",
    "blouse": "t-shirt",
    "jeans": "pants",
    "trousers": "pants",
    "coat": "jacket",
    "blazer": "jacket",
    "formal shirt": "formal-shirt",
}

DEFAULT_PRIMARY = ["chest", "waist", "hip"]
DEFAULT_RELEVANT = [
    "chest", "waist", "hip", "shoulder", "armLength", "inseam", "thighCircumference",
]

# Always projected from the profile regardless of garment.
UNIVERSAL_MEASUREMENTS = ["height", "weight"]

BOTTOM_GARMENTS = {"pants", "skirt", "shorts", "jeans", "trousers"}
TOP_GARMENTS = {
    "shirt", "t-shirt", "tshirt", "dress", "jacket", "blouse", "sweater", "top",
    "formal-shirt", "formal shirt",
}

MEASUREMENT_LABELS = {
    "height": "Height",
    "weight": "Weight",
    "chest": "Chest Circumference",
    "waist": "Waist Circumference",
    "hip": "Hip Circumference",
    "shoulder": "Shoulder Width",
    "armLength": "Arm Length",
    "legLength": "Leg Length",
    "inseam": "Inseam",
    "thighCircumference": "Thigh Circumference",
    "garmentLength": "Garment Length",
}

# ── Fabric tolerances (percent of the user's own measurement) ──────────
# tight = garment smaller than body, loose = garment larger than body.

DEFAULT_FABRIC = "normal"

FABRIC_TOLERANCES = {
    "stretchy": {"tight_primary": 8.0, "tight_secondary": 10.0,
                 "loose_primary": 3.0, "loose_secondary": 5.0},
    "normal":   {"tight_primary": 3.0, "tight_secondary": 5.0,
                 "loose_primary": 3.0, "loose_secondary": 5.0},
    "rigid":    {"tight_primary": 2.0, "tight_secondary": 2.0,
                 "loose_primary": 5.0, "loose_secondary": 5.0},
}

FABRIC_DESCRIPTIONS = {
    "stretchy": "Elastic fabrics like spandex, jersey",
    "normal": "Standard cotton, polyester blends",
    "rigid": "Denim, canvas, stiff materials",
}

# ── Size chart header synonyms ─────────────────────────────────────────
# Keys are matched lower-cased and whitespace-trimmed. Includes the Arabic
# headers seen on regional size charts. Canonical names map to themselves so
# normalizing an already-normalized chart is a no-op.

MEASUREMENT_SYNONYMS = {
    # chest
    "chest": "chest", "bust": "chest", "chest circumference": "chest",
    "صدر": "chest", "محيط الصدر": "chest", "قياس الصدر": "chest",
    # waist ("حزام بطول" / belt length is how many bottoms charts label waist)
    "waist": "waist", "waist circumference": "waist", "belt length": "waist",
    "خصر": "waist", "محيط الخصر": "waist", "قياس الخصر": "waist",
    "حزام بطول": "waist", "حزام": "waist", "طول الحزام": "waist",
    # hip
    "hip": "hip", "hips": "hip", "hip circumference": "hip",
    "ورك": "hip", "محيط الورك": "hip", "حجم الورك": "hip", "قياس الورك": "hip",
    # shoulder
    "shoulder": "shoulder", "shoulders": "shoulder", "shoulder width": "shoulder",
    "كتف": "shoulder", "عرض الكتف": "shoulder", "قياس الكتف": "shoulder",
    # arm / sleeve
    "armlength": "armLength", "arm length": "armLength", "arm_length": "armLength",
    "sleeve": "armLength", "sleeve length": "armLength",
    "طول الذراع": "armLength", "طول الكم": "armLength", "طول الأكمام": "armLength",
    # garment length (never waist)
    "garmentlength": "garmentLength", "garment length": "garmentLength",
    "length": "garmentLength", "total length": "garmentLength",
    "body length": "garmentLength", "الطول": "garmentLength",
    # inseam
    "inseam": "inseam", "inside leg": "inseam",
    "طول الساق الداخلي": "inseam", "طول الرجل الداخلي": "inseam",
    # leg length
    "leglength": "legLength", "leg length": "legLength", "leg_length": "legLength",
    "طول الساق": "legLength", "طول البنطلون": "legLength",
    # thigh
    "thighcircumference": "thighCircumference", "thigh circumference": "thighCircumference",
    "thigh_circumference": "thighCircumference", "thigh": "thighCircumference",
    "محيط الفخذ": "thighCircumference", "فخذ": "thighCircumference",
    "قياس الفخذ": "thighCircumference",
    # body context occasionally printed on charts
    "height": "height", "weight": "weight",
}

# ── Size ordering ──────────────────────────────────────────────────────
# Equal ranks are aliases (2XL == XXL).

SIZE_ORDER = {
    "XXS": 0, "XS": 1, "S": 2, "M": 3, "L": 4, "XL": 5,
    "XXL": 6, "2XL": 6, "XXXL": 7, "3XL": 7, "4XL": 8, "5XL": 9,
}

# Measurements checked for a non-decreasing size progression.
PROGRESSION_MEASUREMENTS = ["chest", "waist", "hip"]

# ── Scoring constants ──────────────────────────────────────────────────

PRIMARY_WEIGHT = 2.0
SECONDARY_WEIGHT = 1.0
# Keeps a 2:1 weighted average roughly on a 0-100 scale.
SCORE_NORMALIZER = 1.5

PERFECT_SCORE = 100.0
WITHIN_TOLERANCE_FLOOR = 80.0
STRETCH_TIGHT_BONUS = 10.0
# Points lost per 10 percentage points beyond the tolerance bound.
OUT_OF_TOLERANCE_DECAY = 20.0

CONFIDENCE_PERFECT_MIN = 95.0
CONFIDENCE_GOOD_MIN = 75.0

SCORE_BANDS = [
    (95.0, "This size provides an excellent fit with all critical measurements matching well."),
    (85.0, "This size provides a good fit with most measurements matching within acceptable tolerance."),
    (75.0, "This size provides a reasonable fit, though some measurements may be slightly off."),
]
SCORE_BAND_DEFAULT = (
    "This is the closest available size, but you may want to consider trying it on "
    "or checking if other sizes are available."
)
# Top band when the chosen size does not list every primary the user supplied.
SCORE_BAND_PARTIAL = (
    "The measurements listed for this size match well, but the chart does not give "
    "every critical measurement for it, so check the missing ones before buying."
)

ALTERNATIVE_MIN_SCORE = 70.0
MAX_ALTERNATIVES = 2

# ── Analysis jobs ──────────────────────────────────────────────────────

JOB_SWEEP_INTERVAL_SECONDS = 10 * 60
JOB_MAX_AGE_SECONDS = 30 * 60

PROGRESS_STARTED = 10
PROGRESS_EXTRACTING = 30
PROGRESS_DONE = 100

# ── Vision extraction ──────────────────────────────────────────────────

DEFAULT_VISION_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_FALLBACK_VISION_MODEL = "claude-opus-4-1-20250805"
VISION_MAX_TOKENS = 2048

# Below this the chart text is rarely legible.
MIN_CHART_IMAGE_SIDE = 200
