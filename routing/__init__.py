#Marks routing as a package.
#Re-exports the distance/ETA heuristics and city detection so other modules
#import from routing without knowing internal file names.
#No network calls anywhere in this package.

from .eta_service import ETAEstimate, distance_km, estimate_eta, estimate_minutes
from .cities import CITIES, City, CityResolver, detect_city

__all__ = [
           "ETAEstimate",
           "distance_km",
             "estimate_eta",
             "estimate_minutes",
             "CITIES",
             "City",
             "CityResolver",
             "detect_city",
             ]
