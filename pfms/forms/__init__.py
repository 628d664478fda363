from pfms.forms.registration import (
    AthleteForm,
    CoachForm,
    EventForm,
    JSONForm,
    LoginForm,
    RefereeForm,
    RegistrationForm,
    TournamentForm,
)

__all__ = [
    'JSONForm',
    'LoginForm',
    'AthleteForm',
    'CoachForm',
    'RefereeForm',
    'EventForm',
    'TournamentForm',
    'RegistrationForm',
]
