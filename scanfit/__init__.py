"""Shape fitting, Kalman-filter tracking and association for 2D laser scans."""

__version__ = "0.1.0"