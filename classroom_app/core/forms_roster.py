from django import forms

from core.forms_base import StyledForm
from core.roster_validation import ACCOUNT_POLICY, SINGLE_STUDENT_POLICY, normalize_email


class RosterUploadForm(StyledForm):
    roster_file = forms.FileField(
        required=True,
        error_messages={"required": "No file selected."},
        help_text="A .csv or .xlsx file with an 'email' column.",
    )


class AddStudentForm(StyledForm):
    email = forms.CharField(
        max_length=254,
        required=True,
        error_messages={"required": "Please enter a valid student Gmail address."},
    )

    def clean_email(self) -> str:
        email = normalize_email(self.cleaned_data.get("email"))
        if SINGLE_STUDENT_POLICY.email_error(email) is not None:
            raise forms.ValidationError("Please enter a valid student Gmail address.")
        return email


class AccountForm(StyledForm):
    email = forms.CharField(max_length=254, required=True, error_messages={"required": "Email is required."})
    password = forms.CharField(
        required=True,
        strip=False,
        widget=forms.PasswordInput,
        error_messages={"required": f"Password must be at least {ACCOUNT_POLICY.min_password_length} characters."},
    )

    def clean_email(self) -> str:
        email = normalize_email(self.cleaned_data.get("email"))
        error = ACCOUNT_POLICY.email_error(email)
        if error is not None:
            raise forms.ValidationError(error)
        return email

    def clean_password(self) -> str:
        password = str(self.cleaned_data.get("password") or "")
        error = ACCOUNT_POLICY.password_error(password)
        if error is not None:
            raise forms.ValidationError(error)
        return password


class SignInForm(StyledForm):
    email = forms.CharField(max_length=254, required=True)
    password = forms.CharField(required=True, strip=False, widget=forms.PasswordInput)

    def clean_email(self) -> str:
        return normalize_email(self.cleaned_data.get("email"))


class PasswordResetRequestForm(StyledForm):
    email = forms.CharField(max_length=254, required=True, error_messages={"required": "Email is required."})

    def clean_email(self) -> str:
        email = normalize_email(self.cleaned_data.get("email"))
        if ACCOUNT_POLICY.email_error(email) is not None:
            raise forms.ValidationError("Please enter a valid email address.")
        return email
