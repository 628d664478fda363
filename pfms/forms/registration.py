"""JSON payload forms for team rosters and federation admin records."""

from __future__ import annotations

from typing import Any

from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import DateField, FloatField, IntegerField, PasswordField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, NumberRange, Optional, ValidationError as FieldError

from pfms.errors import ValidationError
from pfms.models import (
    Equipment,
    Gender,
    Modality,
    RefereeCategory,
    TournamentDivision,
    WeightClass,
)


def _choices(enum_cls) -> list[tuple[str, str]]:
    return [(e.value, e.value) for e in enum_cls]


def _strip(value):
    return str(value).strip() if value is not None else value


def _upper(value):
    return str(value).strip().upper() if value is not None else value


def _lower(value):
    return str(value).strip().lower() if value is not None else value


class JSONForm(FlaskForm):
    """FlaskForm fed from a JSON request body without a CSRF token."""

    class Meta:
        csrf = False

    @classmethod
    def from_json(cls, payload: Any) -> "JSONForm":
        """Build the form from a decoded JSON object, ignoring null values."""
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        return cls(formdata=MultiDict({k: v for k, v in payload.items() if v is not None}))

    def validate_or_raise(self) -> "JSONForm":
        if not self.validate():
            details = "; ".join(
                f"{name}: {', '.join(str(e) for e in errors)}"
                for name, errors in self.errors.items()
            )
            raise ValidationError(details or "Invalid payload")
        return self


class LoginForm(JSONForm):
    email = StringField("Email", validators=[DataRequired(), Email()], filters=[_lower])
    password = PasswordField("Password", validators=[DataRequired()])


class AthleteForm(JSONForm):
    """Athlete owned by the acting team."""

    full_name = StringField("Full Name", validators=[DataRequired(), Length(min=3, max=255)], filters=[_strip])
    dni = StringField("DNI", validators=[DataRequired(), Length(min=6, max=32)], filters=[_strip])
    birth_year = IntegerField("Birth Year", validators=[DataRequired()])
    gender = SelectField("Gender", choices=_choices(Gender), validators=[DataRequired()], filters=[_upper])
    goodlift_ref = StringField("GoodLift Reference", validators=[Optional(), Length(max=255)], filters=[_strip])
    squat_best_kg = FloatField("Squat Best (kg)", validators=[Optional(), NumberRange(min=0)], default=0)
    bench_best_kg = FloatField("Bench Best (kg)", validators=[Optional(), NumberRange(min=0)], default=0)
    deadlift_best_kg = FloatField("Deadlift Best (kg)", validators=[Optional(), NumberRange(min=0)], default=0)


class CoachForm(JSONForm):
    full_name = StringField("Full Name", validators=[DataRequired(), Length(min=3, max=255)], filters=[_strip])
    dni = StringField("DNI", validators=[DataRequired(), Length(min=6, max=32)], filters=[_strip])


class RefereeForm(JSONForm):
    full_name = StringField("Full Name", validators=[DataRequired(), Length(min=3, max=255)], filters=[_strip])
    dni = StringField("DNI", validators=[DataRequired(), Length(min=6, max=32)], filters=[_strip])
    category = SelectField(
        "Category",
        choices=_choices(RefereeCategory),
        validators=[DataRequired()],
        filters=[_lower],
    )


class EventForm(JSONForm):
    name = StringField("Name", validators=[DataRequired(), Length(min=3, max=255)], filters=[_strip])
    slug = StringField("Slug", validators=[DataRequired(), Length(min=3, max=255)], filters=[_lower])
    venue = StringField("Venue", validators=[DataRequired(), Length(max=255)], filters=[_strip])
    location = StringField("Location", validators=[DataRequired(), Length(max=255)], filters=[_strip])
    start_date = DateField("Start Date", validators=[DataRequired()], format="%Y-%m-%d")
    end_date = DateField("End Date", validators=[DataRequired()], format="%Y-%m-%d")
    description = TextAreaField("Description", validators=[Optional()])

    def validate_end_date(self, field):
        if self.start_date.data and field.data and field.data < self.start_date.data:
            raise FieldError("End date must not be before start date")


class TournamentForm(JSONForm):
    name = StringField("Name", validators=[DataRequired(), Length(min=3, max=255)], filters=[_strip])
    division = SelectField("Division", choices=_choices(TournamentDivision), validators=[DataRequired()], filters=[_lower])
    modality = SelectField("Modality", choices=_choices(Modality), validators=[DataRequired()], filters=[_lower])
    equipment = SelectField("Equipment", choices=_choices(Equipment), validators=[DataRequired()], filters=[_lower])
    max_athletes = IntegerField("Max Athletes", validators=[Optional(), NumberRange(min=1)])


class RegistrationForm(JSONForm):
    """Single athlete nomination into a tournament."""

    tournament_id = StringField("Tournament", validators=[DataRequired()], filters=[_strip])
    athlete_id = StringField("Athlete", validators=[DataRequired()], filters=[_strip])
    weight_class = SelectField("Weight Class", choices=_choices(WeightClass), validators=[DataRequired()], filters=[_upper])
    squat_opener_kg = FloatField("Squat Opener (kg)", validators=[Optional(), NumberRange(min=0)])
    bench_opener_kg = FloatField("Bench Opener (kg)", validators=[Optional(), NumberRange(min=0)])
    deadlift_opener_kg = FloatField("Deadlift Opener (kg)", validators=[Optional(), NumberRange(min=0)])


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
