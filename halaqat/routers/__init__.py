from halaqat.routers import (
    activities,
    auth,
    badges,
    centers,
    functions,
    groups,
    holidays,
    parents,
    points,
    purchases,
    reports,
    store,
    students,
    uploads,
    votes,
)

__all__ = [
    'activities',
    'auth',
    'badges',
    'centers',
    'functions',
    'groups',
    'holidays',
    'parents',
    'points',
    'purchases',
    'reports',
    'store',
    'students',
    'uploads',
    'votes',
]
