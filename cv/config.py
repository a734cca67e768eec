"""Rectangle detection and throttling configuration."""

# Acceptance filters
MIN_CONFIDENCE = 0.95
MIN_ASPECT_RATIO = 0.5  # short side / long side
MAX_ASPECT_RATIO = 1.0
QUADRATURE_TOLERANCE_DEG = 10.0  # Max corner deviation from a right angle
MIN_SIZE = 0.2  # Shorter quad side relative to the shorter frame side
MAX_OBSERVATIONS = 1

# Contour search
BLUR_KSIZE = 5
CANNY_LOW = 50
CANNY_HIGH = 150
DILATE_ITERATIONS = 1
APPROX_EPSILON = 0.02  # Fraction of contour perimeter
MIN_CONTOUR_AREA_RATIO = 0.01

# Frame sampling
THROTTLE_INTERVAL_SEC = 0.1
