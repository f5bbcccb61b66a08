"""Canonical transcript texts shared by the detection tests."""

# Well-formed header ABC123 stated three times
HEADER_ONLY = (
    "Alpha Bravo Charlie One Two Three, Alpha Bravo Charlie One Two Three, "
    "Alpha Bravo Charlie One Two Three"
)
# 10-character body XYZ1234567
BODY_ONLY = "Message follows. X-ray Yankee Zulu One Two Three Four Five Six Seven"
# Scores 45 with default weights: header 30 + body 15
FULL_MESSAGE = f"{HEADER_ONLY}. {BODY_ONLY}"

LOOPING = "Thank you for watching. Thank you for watching. Thank you for watching."
CHATTER_1 = "Weather is clear tonight over the coast"
CHATTER_2 = "Radio check complete, signal is good"

# Header ABC123 with each statement split at a comma, then a 12-character body
COMMA_SPLIT_MESSAGE = (
    "Alpha Bravo Charlie, One Two Three. Alpha Bravo Charlie, One Two Three. "
    "Alpha Bravo Charlie, One Two Three. Message follows. "
    "X-ray Yankee Zulu One Two Three Four Five Six Seven Eight Nine"
)
# Codeword PANAMA, time 25, authentication ZK
SKYKING = "Skyking, Skyking, do not answer. Panama, Panama. Time two five. Authentication Zulu Kilo."
