"""
Tracker services: address resolution, visit recording, redirects,
statistics, geolocation merge and geo-IP enrichment.

Endpoints stay thin and delegate to these classes.
"""
