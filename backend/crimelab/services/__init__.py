"""
Services - resolution engine, activity log, analytics and storefront access.

Import concrete modules directly (e.g. crimelab.services.resolution_committer);
this package deliberately re-exports nothing so repositories can import
crimelab.services.errors without cycles.
"""
