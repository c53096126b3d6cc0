"""Reference catalog of Google Places "Table A" place types, grouped by category.

A representative subset per category; decoy visits draw their place type from
the flattened catalog.
"""

from types import MappingProxyType

PLACE_CATEGORIES = MappingProxyType({
    "Automotive": ("car_repair", "gas_station", "parking", "car_wash"),
    "Business": ("corporate_office", "farm"),
    "Culture": ("art_gallery", "museum", "performing_arts_theater", "monument"),
    "Education": ("library", "school", "university", "primary_school"),
    "Entertainment/Recreation": (
        "amusement_park", "bowling_alley", "community_center", "movie_theater",
        "national_park", "park", "zoo", "night_club", "casino", "concert_hall",
    ),
    "Facilities": ("public_bathroom",),
    "Finance": ("bank", "atm"),
    "Food and Drink": (
        "restaurant", "cafe", "bakery", "bar", "coffee_shop", "fast_food_restaurant",
        "ice_cream_shop", "pizza_restaurant", "sushi_restaurant", "steak_house",
        "italian_restaurant", "chinese_restaurant", "mexican_restaurant",
    ),
    "Geographical Areas": ("locality",),
    "Government": ("post_office", "courthouse", "city_hall", "police"),
    "Health and Wellness": ("hospital", "pharmacy", "dentist", "doctor", "gym", "spa"),
    "Housing": ("apartment_building", "apartment_complex"),
    "Lodging": ("hotel", "hostel", "campground", "motel"),
    "Natural Features": ("beach",),
    "Places of Worship": ("church", "mosque", "synagogue"),
    "Services": ("hair_salon", "laundry", "veterinary_care", "barber_shop", "beauty_salon"),
    "Shopping": (
        "supermarket", "grocery_store", "clothing_store", "shopping_mall",
        "convenience_store", "book_store", "electronics_store", "shoe_store",
    ),
    "Sports": ("fitness_center", "stadium", "swimming_pool", "golf_course"),
    "Transportation": ("train_station", "bus_station", "airport", "subway_station"),
})

PLACE_TYPE_CATALOG = tuple(t for types in PLACE_CATEGORIES.values() for t in types)
