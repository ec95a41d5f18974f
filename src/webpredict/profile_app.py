"""
User Profile Application
========================

Panel web view for editing the signed-in user's profile. The form state is a
ProfileForm record; each widget change replaces it with form.with_field(...),
and Save hands the current record to ProfileEditor.
"""
import panel as pn

from energypredict.api_client import ApiClient
from energypredict.config import Settings, configure_logging, load_settings
from energypredict.errors import ProfileNotLoaded, TransportError, ValidationError
from energypredict.forms import USER_TYPES, ProfileForm
from energypredict.profile import SUCCESS_MESSAGE, ProfileEditor
from webpredict.energy_prediction_app import make_session_cleanup, session_username

pn.extension(sizing_mode="stretch_width", notifications=True)

ALERT_DISMISS_MS = 10000


def create_profile_ui(editor: ProfileEditor):
    """Build the profile form. Returns the layout and a `load` coroutine that populates it."""
    form_state = {'form': ProfileForm()}

    # ===== Input Widgets =====
    widgets = {
        'firstName': pn.widgets.TextInput(name="First Name", placeholder="First Name", width=200),
        'lastName': pn.widgets.TextInput(name="Last Name", placeholder="Last Name", width=200),
        'email': pn.widgets.TextInput(name="Email", placeholder="Email", width=300),
        'phoneNo': pn.widgets.TextInput(name="Phone No.", placeholder="Phone No.", width=200),
        'userType': pn.widgets.Select(name="User Type", options=list(USER_TYPES), width=200),
        'password': pn.widgets.PasswordInput(name="Password", placeholder="Password", width=200),
        'notification': pn.widgets.Checkbox(name="Do you wish to receive the notifications"),
    }
    errors_panes = {name: pn.pane.Markdown("", styles={"color": "#dc3545"}) for name in widgets}
    save_btn = pn.widgets.Button(name="Save Changes", button_type="primary", width=150, disabled=True)
    alert = pn.pane.Alert("", alert_type='light', visible=False)

    layout = pn.Column(
        pn.pane.Markdown("# Profile"),
        alert,
        *[pn.Column(widgets[name], errors_panes[name]) for name in widgets],
        save_btn,
    )

    # ===== Helper Functions =====

    def show_alert(message: str, alert_type: str):
        alert.object = message
        alert.alert_type = alert_type
        alert.visible = bool(message)
        if message and pn.state.curdoc is not None:
            pn.state.add_periodic_callback(lambda: show_alert("", 'light'), period=ALERT_DISMISS_MS, count=1)

    def show_field_errors(field_errors: dict[str, str]):
        for name, pane in errors_panes.items():
            pane.object = field_errors.get(name, "")

    def fill_widgets(form: ProfileForm):
        for name, value in form.to_changes().items():
            widgets[name].value = value

    def make_watcher(field_name: str):
        def on_change(event):
            form_state['form'] = form_state['form'].with_field(field_name, event.new)
        return on_change

    # ===== Callbacks =====

    async def load():
        try:
            await editor.load()
        except TransportError as e:
            show_alert(e.message, 'danger')
            return
        form_state['form'] = editor.initial_form()
        fill_widgets(form_state['form'])
        save_btn.disabled = False
        show_alert("", 'light')

    async def on_save(event):
        save_btn.loading = True
        try:
            await editor.save(form_state['form'])
        except ValidationError as e:
            # DuplicateFieldError included: conflicts are shown on their fields
            show_field_errors(e.field_errors)
            return
        except (TransportError, ProfileNotLoaded) as e:
            show_alert(e.message, 'danger')
            return
        finally:
            save_btn.loading = False
        show_field_errors({})
        form_state['form'] = editor.initial_form()
        fill_widgets(form_state['form'])
        show_alert(SUCCESS_MESSAGE, 'success')

    # ===== Wire up callbacks =====
    for name, widget in widgets.items():
        widget.param.watch(make_watcher(name), 'value')
    save_btn.on_click(on_save)

    return layout, load


def create_app(settings: Settings | None = None):
    """Create and return the profile Panel application."""
    settings = settings or load_settings()
    configure_logging(settings)
    client = ApiClient.from_settings(settings)
    editor = ProfileEditor(client, username=session_username())
    layout, load = create_profile_ui(editor)
    pn.state.onload(load)
    if pn.state.curdoc is not None:
        pn.state.on_session_destroyed(make_session_cleanup(client))
    return layout


if __name__.startswith("bokeh"):
    create_app().servable()


if __name__ == "__main__":
    pn.serve(create_app, show=True, port=5007)
