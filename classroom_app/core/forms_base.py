"""Form base class applying Bootstrap widget classes."""

from django import forms


class StyledForm(forms.Form):
    """Form base that auto-applies Bootstrap CSS classes and marks invalid fields."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            if isinstance(field.widget, forms.ClearableFileInput):
                field.widget.attrs.setdefault("class", "form-control-file")
            else:
                field.widget.attrs.setdefault("class", "form-control")

    def full_clean(self):
        super().full_clean()
        for name in self.errors.keys():
            if name not in self.fields:
                continue
            widget = self.fields[name].widget
            css = widget.attrs.get("class", "")
            if "is-invalid" not in css:
                widget.attrs["class"] = (css + " is-invalid").strip()

    def first_error(self) -> str:
        for errors in self.errors.values():
            for error in errors:
                return str(error)
        return "Invalid input."
