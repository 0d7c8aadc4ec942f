"""
WTForms classes for the Barangay Management System.

One form per record type keeps the view functions in `routes.py` short.
Choice lists come from the constants in `models.py`; choices that depend on
the database (residents) are filled in by the views.
"""
import re

from flask import current_app
from flask_wtf import FlaskForm
from flask_wtf.file import FileField, FileRequired
from wtforms import (
    BooleanField,
    DateField,
    FloatField,
    IntegerField,
    PasswordField,
    SelectField,
    SelectMultipleField,
    StringField,
    SubmitField,
    TextAreaField,
)
from wtforms.validators import DataRequired, EqualTo, Length, NumberRange, Optional, Regexp, ValidationError
from wtforms.widgets import CheckboxInput, ListWidget

from .models import (
    ACTIVITY_STATUSES,
    ACTIVITY_TYPES,
    CERTIFICATE_TYPES,
    DOCUMENT_CATEGORIES,
    GENDERS,
    OFFICIAL_STATUSES,
    ORDINANCE_STATUSES,
    REPORT_PRIORITIES,
    REPORT_STATUSES,
    REPORT_TYPES,
    RESIDENT_STATUSES,
    USER_ROLES,
)


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _choices(values):
    return [(v, v) for v in values]


def _labelled_choices(values):
    return [(v, " ".join(word.capitalize() for word in v.split("_"))) for v in values]


def _password_policy_errors(password: str) -> list[str]:
    min_len = int(current_app.config.get("PASSWORD_MIN_LENGTH", 10))
    require_upper = current_app.config.get("PASSWORD_REQUIRE_UPPER", True)
    require_lower = current_app.config.get("PASSWORD_REQUIRE_LOWER", True)
    require_digit = current_app.config.get("PASSWORD_REQUIRE_DIGIT", True)
    require_symbol = current_app.config.get("PASSWORD_REQUIRE_SYMBOL", True)
    disallow_spaces = current_app.config.get("PASSWORD_DISALLOW_SPACES", True)

    errors = []
    if len(password) < min_len:
        errors.append(f"at least {min_len} characters")
    if require_upper and not re.search(r"[A-Z]", password):
        errors.append("an uppercase letter")
    if require_lower and not re.search(r"[a-z]", password):
        errors.append("a lowercase letter")
    if require_digit and not re.search(r"\d", password):
        errors.append("a number")
    if require_symbol and not re.search(r"[^\w\s]", password):
        errors.append("a symbol")
    if disallow_spaces and re.search(r"\s", password):
        errors.append("no spaces")
    return errors


def password_strength_required(form, field) -> None:
    errors = _password_policy_errors(field.data or "")
    if errors:
        raise ValidationError("Password must contain " + ", ".join(errors) + ".")


class MultiCheckboxField(SelectMultipleField):
    """A multi-select rendered as a list of checkboxes."""

    widget = ListWidget(prefix_label=False)
    option_widget = CheckboxInput()


class ResidentForm(FlaskForm):
    first_name = StringField("First Name", validators=[DataRequired(), Length(max=100)])
    middle_name = StringField("Middle Name", validators=[Optional(), Length(max=100)])
    last_name = StringField("Last Name", validators=[DataRequired(), Length(max=100)])
    date_of_birth = DateField("Date of Birth", validators=[DataRequired()])
    gender = SelectField("Gender", choices=_choices(GENDERS), validators=[DataRequired()])
    house_number = StringField("House Number", validators=[Optional(), Length(max=50)])
    purok = StringField("Purok", validators=[Optional(), Length(max=100)])
    street_address = StringField("Street Address", validators=[Optional(), Length(max=255)])
    phone_number = StringField("Phone Number", validators=[Optional(), Length(max=20)])
    email = StringField(
        "Email",
        validators=[Optional(), Length(max=255), Regexp(EMAIL_PATTERN, message="Enter a valid email address.")],
    )
    barangay_id_number = StringField("Barangay ID No.", validators=[Optional(), Length(max=50)])
    is_senior_citizen = BooleanField("Senior Citizen")
    is_pwd = BooleanField("Person with Disability")
    is_indigenous = BooleanField("Indigenous People")
    status = SelectField("Status", choices=_choices(RESIDENT_STATUSES), default="Active")
    submit = SubmitField("Save")


class HouseholdForm(FlaskForm):
    """Add/Edit household.  `members` choices are set by the view."""

    house_number = StringField(
        "House Number",
        validators=[DataRequired(message="House number is required."), Length(max=50)],
    )
    purok = StringField("Purok", validators=[Optional(), Length(max=100)])
    street_address = StringField("Street Address", validators=[Optional(), Length(max=255)])
    has_electricity = BooleanField("Connected to Electricity")
    has_water = BooleanField("Connected to Water Supply")
    latitude = FloatField("Latitude", validators=[Optional(), NumberRange(min=-90, max=90)])
    longitude = FloatField("Longitude", validators=[Optional(), NumberRange(min=-180, max=180)])
    members = MultiCheckboxField("Assign Residents", choices=[], validate_choice=True)
    submit = SubmitField("Save Household")


class OfficialForm(FlaskForm):
    resident_id = SelectField("Resident", choices=[], validators=[DataRequired(message="Please select a resident.")])
    position = StringField("Position", validators=[DataRequired(), Length(max=100)])
    term_start = DateField("Term Start", validators=[DataRequired()])
    term_end = DateField("Term End", validators=[Optional()])
    status = SelectField("Status", choices=_choices(OFFICIAL_STATUSES), default="Active")
    submit = SubmitField("Save")

    def validate_term_end(self, field):
        if field.data and self.term_start.data and field.data < self.term_start.data:
            raise ValidationError("Term end cannot be before term start.")


class OrdinanceForm(FlaskForm):
    ordinance_number = StringField("Ordinance Number", validators=[DataRequired(), Length(max=50)])
    title = StringField("Title", validators=[DataRequired(), Length(max=255)])
    description = TextAreaField("Description", validators=[Optional()])
    content = TextAreaField("Content", validators=[Optional()])
    date_enacted = DateField("Date Enacted", validators=[DataRequired()])
    status = SelectField("Status", choices=_choices(ORDINANCE_STATUSES), default="Active")
    submit = SubmitField("Save")


class ActivityForm(FlaskForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=255)])
    description = TextAreaField("Description", validators=[Optional()])
    activity_type = SelectField("Activity Type", choices=_choices(ACTIVITY_TYPES), validators=[DataRequired()])
    activity_date = DateField("Date", validators=[DataRequired()])
    location = StringField("Location", validators=[Optional(), Length(max=255)])
    organizer = StringField("Organizer", validators=[Optional(), Length(max=255)])
    participants_count = IntegerField("Participants", validators=[Optional(), NumberRange(min=0)])
    status = SelectField("Status", choices=_choices(ACTIVITY_STATUSES), default="Scheduled")
    submit = SubmitField("Save")


class ReportForm(FlaskForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=255)])
    description = TextAreaField("Description", validators=[Optional()])
    report_type = SelectField("Report Type", choices=_choices(REPORT_TYPES), validators=[DataRequired()])
    reported_by = StringField("Reported By", validators=[Optional(), Length(max=255)])
    location = StringField("Location", validators=[Optional(), Length(max=255)])
    priority = SelectField("Priority", choices=_choices(REPORT_PRIORITIES), default="Medium")
    status = SelectField("Status", choices=_choices(REPORT_STATUSES), default="Pending")
    submit = SubmitField("Save")


class CertificateForm(FlaskForm):
    certificate_type = SelectField(
        "Certificate Type",
        choices=_labelled_choices(CERTIFICATE_TYPES),
        validators=[DataRequired(message="Certificate type is required.")],
    )
    resident_id = SelectField("Resident", choices=[], validators=[DataRequired(message="Resident is required.")])
    purpose = TextAreaField("Purpose", validators=[DataRequired(message="Purpose is required.")])
    issued_by = StringField("Issued By", validators=[DataRequired(message="Issued by is required."), Length(max=255)])
    valid_until = DateField("Valid Until", validators=[Optional()])
    notes = TextAreaField("Notes", validators=[Optional()])
    submit = SubmitField("Generate Certificate")


class DocumentUploadForm(FlaskForm):
    title = StringField("Title", validators=[DataRequired(message="Title is required."), Length(max=255)])
    description = TextAreaField("Description", validators=[Optional()])
    category = SelectField(
        "Category",
        choices=_labelled_choices(DOCUMENT_CATEGORIES),
        validators=[DataRequired(message="Category is required.")],
    )
    document_number = StringField("Document Number", validators=[Optional(), Length(max=50)])
    file = FileField("File", validators=[FileRequired(message="File is required.")])
    submit = SubmitField("Upload Document")


class DocumentVersionForm(FlaskForm):
    description = TextAreaField("Change Notes", validators=[Optional()])
    file = FileField("File", validators=[FileRequired(message="File is required.")])
    submit = SubmitField("Upload New Version")


class LoginForm(FlaskForm):
    username = StringField("Username", validators=[DataRequired()])
    password = PasswordField("Password", validators=[DataRequired()])
    remember = BooleanField("Remember Me")
    submit = SubmitField("Log In")


class PasswordChangeForm(FlaskForm):
    current_password = PasswordField("Current Password", validators=[DataRequired()])
    new_password = PasswordField("New Password", validators=[DataRequired(), password_strength_required])
    confirm_new_password = PasswordField(
        "Confirm New Password",
        validators=[DataRequired(), EqualTo("new_password", message="Passwords must match")],
    )
    submit = SubmitField("Change Password")


class UserForm(FlaskForm):
    """Admin form for creating a user account."""

    username = StringField("Username", validators=[DataRequired(), Length(max=150)])
    email = StringField(
        "Email",
        validators=[DataRequired(), Length(max=255), Regexp(EMAIL_PATTERN, message="Enter a valid email address.")],
    )
    full_name = StringField("Full Name", validators=[Optional(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(), password_strength_required])
    role = SelectField("Role", choices=_labelled_choices(USER_ROLES), default="viewer")
    submit = SubmitField("Save")


class EditUserForm(FlaskForm):
    """Admin form for changing another user's role and profile."""

    full_name = StringField("Full Name", validators=[Optional(), Length(max=255)])
    position = StringField("Position", validators=[Optional(), Length(max=100)])
    role = SelectField("Role", choices=_labelled_choices(USER_ROLES), validators=[DataRequired()])
    submit = SubmitField("Update User")


class ProfileForm(FlaskForm):
    full_name = StringField("Full Name", validators=[Optional(), Length(max=255)])
    position = StringField("Position", validators=[Optional(), Length(max=100)])
    phone_number = StringField("Phone Number", validators=[Optional(), Length(max=30)])
    submit = SubmitField("Save Profile")


class BarangayInfoForm(FlaskForm):
    barangay_name = StringField("Barangay Name", validators=[DataRequired(), Length(max=255)])
    barangay_code = StringField("Barangay Code", validators=[Optional(), Length(max=50)])
    municipality = StringField("Municipality / City", validators=[Optional(), Length(max=255)])
    province = StringField("Province", validators=[Optional(), Length(max=255)])
    region = StringField("Region", validators=[Optional(), Length(max=255)])
    address = StringField("Address", validators=[Optional(), Length(max=255)])
    phone_number = StringField("Phone Number", validators=[Optional(), Length(max=30)])
    email = StringField(
        "Email",
        validators=[Optional(), Length(max=255), Regexp(EMAIL_PATTERN, message="Enter a valid email address.")],
    )
    submit = SubmitField("Save")


class DeleteForm(FlaskForm):
    """Tiny form used only to attach CSRF to POST actions."""

    submit = SubmitField("Delete")
