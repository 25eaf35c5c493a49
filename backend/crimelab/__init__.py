"""
Imaginary Crime Lab - case resolution backend

Detective cases are solved by purchasing their evidence. Completed storefront
orders flow through the resolution engine, which records purchased evidence,
commits newly solved cases exactly once and announces them on a live
activity feed.
"""

__version__ = "1.0.0"
