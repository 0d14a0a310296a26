DEFAULT_SLOT_TIMES = ["09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00", "17:00"]

# Used when settings/business has no usable service catalog.
DEFAULT_SERVICE_CATALOG = [
    {"id": "anatomical", "name": "Anatomical structure", "duration_minutes": 60},
    {"id": "gel_refill", "name": "Gel refill", "duration_minutes": 35},
    {"id": "tips_refill", "name": "Tips refill", "duration_minutes": 60},
    {"id": "gel_build", "name": "Gel build", "duration_minutes": 60},
    {"id": "nail_repair", "name": "Nail repair", "duration_minutes": 15},
    {"id": "crack_treatment", "name": "Crack treatment", "duration_minutes": 15},
]
