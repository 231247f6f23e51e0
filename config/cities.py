"""Reference data for address parsing: city aliases, states and stop-words.

The alias table maps lower-case spellings found in citizen-entered
addresses (old names, short forms, hyphenated variants) to the canonical
city name used as the mapping-table key.
"""

from __future__ import annotations

from typing import Final

__all__ = [
    "CITY_ALIASES",
    "INDIAN_STATES",
    "NON_CITY_WORDS",
    "STRUCTURAL_WORDS",
]


CITY_ALIASES: Final[dict[str, str]] = {
    "mumbai": "Mumbai",
    "bombay": "Mumbai",
    "delhi": "Delhi",
    "new delhi": "Delhi",
    "bengaluru": "Bengaluru",
    "bangalore": "Bengaluru",
    "hyderabad": "Hyderabad",
    "chennai": "Chennai",
    "madras": "Chennai",
    "kolkata": "Kolkata",
    "calcutta": "Kolkata",
    "pune": "Pune",
    "ahmedabad": "Ahmedabad",
    "surat": "Surat",
    "jaipur": "Jaipur",
    "lucknow": "Lucknow",
    "kanpur": "Kanpur",
    "nagpur": "Nagpur",
    "indore": "Indore",
    "thane": "Thane",
    "bhopal": "Bhopal",
    "visakhapatnam": "Visakhapatnam",
    "vizag": "Visakhapatnam",
    "pimpri chinchwad": "Pimpri-Chinchwad",
    "pimpri-chinchwad": "Pimpri-Chinchwad",
    "patna": "Patna",
    "vadodara": "Vadodara",
    "baroda": "Vadodara",
    "ghaziabad": "Ghaziabad",
    "ludhiana": "Ludhiana",
    "agra": "Agra",
    "nashik": "Nashik",
    "faridabad": "Faridabad",
    "meerut": "Meerut",
    "rajkot": "Rajkot",
    "kalyan-dombivli": "Kalyan-Dombivli",
    "vasai-virar": "Vasai-Virar",
    "varanasi": "Varanasi",
    "banaras": "Varanasi",
    "srinagar": "Srinagar",
    "aurangabad": "Aurangabad",
    "dhanbad": "Dhanbad",
    "amritsar": "Amritsar",
    "navi mumbai": "Navi Mumbai",
    "allahabad": "Prayagraj",
    "prayagraj": "Prayagraj",
    "howrah": "Howrah",
    "ranchi": "Ranchi",
    "gwalior": "Gwalior",
    "jabalpur": "Jabalpur",
    "coimbatore": "Coimbatore",
    "vijayawada": "Vijayawada",
    "jodhpur": "Jodhpur",
    "madurai": "Madurai",
    "raipur": "Raipur",
    "kota": "Kota",
    "chandigarh": "Chandigarh",
    "guwahati": "Guwahati",
    "solapur": "Solapur",
    "hubli-dharwad": "Hubli-Dharwad",
    "bareilly": "Bareilly",
    "moradabad": "Moradabad",
    "mysore": "Mysuru",
    "mysuru": "Mysuru",
    "tiruchirappalli": "Tiruchirappalli",
    "trichy": "Tiruchirappalli",
    "salem": "Salem",
    "tiruppur": "Tiruppur",
}

INDIAN_STATES: Final[tuple[str, ...]] = (
    "Andhra Pradesh",
    "Arunachal Pradesh",
    "Assam",
    "Bihar",
    "Chhattisgarh",
    "Goa",
    "Gujarat",
    "Haryana",
    "Himachal Pradesh",
    "Jharkhand",
    "Karnataka",
    "Kerala",
    "Madhya Pradesh",
    "Maharashtra",
    "Manipur",
    "Meghalaya",
    "Mizoram",
    "Nagaland",
    "Odisha",
    "Punjab",
    "Rajasthan",
    "Sikkim",
    "Tamil Nadu",
    "Telangana",
    "Tripura",
    "Uttar Pradesh",
    "Uttarakhand",
    "West Bengal",
    "Delhi",
    "Jammu and Kashmir",
    "Ladakh",
    "Lakshadweep",
    "Puducherry",
    "Andaman and Nicobar Islands",
    "Chandigarh",
    "Dadra and Nagar Haveli and Daman and Diu",
)

# Address fragments containing any of these are landmarks or street parts,
# never a city.
STRUCTURAL_WORDS: Final[tuple[str, ...]] = (
    "near", "opp", "opposite", "behind", "front", "road", "street", "lane",
    "area", "sector", "block", "plot", "house", "flat", "apartment",
    "building", "complex", "society", "colony", "nagar", "pura", "ganj",
    "market", "chowk", "circle", "square", "junction", "cross", "bridge",
    "gate", "station", "stop", "stand", "depot", "terminal", "airport",
    "port", "hospital", "school", "college", "university", "temple",
    "mosque", "church", "park", "garden", "mall", "center", "centre",
)

# Placeholder values the citizen app writes when a field is left empty.
NON_CITY_WORDS: Final[frozenset[str]] = frozenset(
    {"unknown", "not provided", "n/a", "na", "nil", "none", "test", "sample"}
)
