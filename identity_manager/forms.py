"""
Forms that check the shape of caller input before a workflow starts.

A form only checks what can be known without talking to a collaborator:
required fields, e-mail syntax, password length and confirmation. Whether
an e-mail address is taken, or whether a password satisfies the credential
store's policy, is decided by the stores.
"""

from typing import Any, Mapping, Type, TypeVar

from werkzeug.datastructures import MultiDict
from wtforms import StringField, PasswordField, BooleanField, HiddenField, \
    Form
from wtforms.validators import DataRequired, Email, Length, Optional, \
    ValidationError as FieldError

from .exceptions import ValidationError

FormType = TypeVar('FormType', bound=Form)

PASSWORD_MISMATCH = 'Password and Confirm Password must match.'


class PasswordForm(Form):
    """Base for forms that choose a new password."""

    password = PasswordField('Password', validators=[DataRequired()])
    confirm_password = PasswordField('Confirm Password')

    def __init__(self, *args: Any, min_length: int = 4, max_length: int = 100,
                 **kwargs: Any) -> None:
        """Grab the password length bounds."""
        self.min_length = min_length
        self.max_length = max_length
        super(PasswordForm, self).__init__(*args, **kwargs)

    def validate_password(self, field: PasswordField) -> None:
        """Check the length bounds."""
        if not self.min_length <= len(field.data or '') <= self.max_length:
            raise FieldError(
                f'The password must be between {self.min_length} and'
                f' {self.max_length} characters long.'
            )

    def validate_confirm_password(self, field: PasswordField) -> None:
        """Verify that the password is the same in both fields."""
        if field.data != self.password.data:
            raise FieldError(PASSWORD_MISMATCH)


class RegistrationForm(PasswordForm):
    """Account registration form."""

    email = StringField('Email',
                        validators=[DataRequired(), Email(), Length(max=256)])
    name = StringField('Name', validators=[Optional(), Length(max=256)])
    role_selected = StringField('Role', validators=[Optional()])


class LoginForm(Form):
    """Sign in form."""

    email = StringField('Email', validators=[DataRequired(), Email()])
    password = PasswordField('Password', validators=[DataRequired()])
    remember_me = BooleanField('Remember me?')


class ForgotPasswordForm(Form):
    """Request a password reset link."""

    email = StringField('Email', validators=[DataRequired(), Email()])


class ResetPasswordForm(PasswordForm):
    """Choose a new password with a reset code."""

    email = StringField('Email', validators=[DataRequired(), Email()])
    code = HiddenField('Code', validators=[DataRequired()])


class ExternalLoginConfirmationForm(Form):
    """Confirm the details of an account created from an external login."""

    email = StringField('Email',
                        validators=[DataRequired(), Email(), Length(max=256)])
    name = StringField('Name', validators=[DataRequired(), Length(max=256)])


def bind(form_class: Type[FormType], data: Mapping, **kwargs: Any) \
        -> FormType:
    """
    Bind caller input to a form and validate it.

    Parameters
    ----------
    form_class : type
        One of the forms in this module.
    data : Mapping
        Caller input, e.g. a :class:`werkzeug.datastructures.MultiDict` from
        a request, or a plain dict.

    Returns
    -------
    :class:`wtforms.Form`
        The validated form.

    Raises
    ------
    :class:`.ValidationError`
        If the input does not validate; carries the form's field errors.

    """
    if not isinstance(data, MultiDict):
        data = MultiDict({key: value for key, value in (data or {}).items()
                          if value is not None})
    form = form_class(data, **kwargs)
    if not form.validate():
        raise ValidationError({name: list(messages) for name, messages
                               in form.errors.items()})
    return form
