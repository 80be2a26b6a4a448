from rest_framework.throttling import UserRateThrottle, AnonRateThrottle


class BurstRateThrottle(UserRateThrottle):
    """
    Short-window limit for every API caller.
    Scope: 'burst'
    """
    scope = "burst"


class SustainedRateThrottle(UserRateThrottle):
    """
    General API usage.
    """
    scope = "sustained"


class AuthRateThrottle(AnonRateThrottle):
    """
    Strict throttling for login and registration attempts.
    """
    scope = "auth"
