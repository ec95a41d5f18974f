"""
Energy Prediction Application
=============================

Panel web view for requesting an energy prediction and watching it complete.

- The form collects a date/time range and builds a PredictionRequest
- PollController submits the job and polls for hourly data
- The view subscribes to the PollHandle and re-renders on every new PollState
- Hourly data is shown per day with a Total row and can be downloaded as CSV
"""
import asyncio
import io

import panel as pn
import pandas as pd

from energypredict.api_client import ApiClient
from energypredict.config import Settings, configure_logging, load_settings
from energypredict.errors import InvalidTimestampFormat, SubmitError
from energypredict.forms import PredictionRequest
from energypredict.polling import PollController, PollHandle, PollState, PollStatus
from energypredict.timeseries import aggregate_daily, daily_summary_frame, to_export_csv

pn.extension('tabulator', sizing_mode="stretch_width", notifications=True)

ALERT_TYPES = {
    PollStatus.IDLE: 'light',
    PollStatus.PENDING: 'warning',
    PollStatus.SUCCEEDED: 'success',
    PollStatus.FAILED: 'danger',
    PollStatus.TIMED_OUT: 'danger',
}


def session_username(default: str = "") -> str:
    """Username from the page's ?id= query argument, as the routed view received it."""
    args = pn.state.session_args or {}
    values = args.get('id')
    if not values:
        return default
    value = values[0]
    return value.decode() if isinstance(value, bytes) else str(value)


def make_session_cleanup(client: ApiClient):
    """Session-destroyed callback that closes the client's HTTP session."""
    def on_session_destroyed(session_context):
        return asyncio.ensure_future(client.close())
    return on_session_destroyed


def empty_results_frame() -> pd.DataFrame:
    return pd.DataFrame({"Message": ["Submit a date range to run a prediction"]})


def create_prediction_ui(controller: PollController, username: str, settings: Settings):
    """
    Build the prediction form, status alert, results table and download button.
    Returns the layout; all state lives in the closure's current PollHandle.
    """
    current = {'handle': None, 'unsubscribe': None, 'state': None}

    # ===== Input Widgets =====
    from_date_input = pn.widgets.DatePicker(name="From", width=160)
    from_time_input = pn.widgets.TextInput(name="Start Time", placeholder="HH:MM", width=100)
    to_date_input = pn.widgets.DatePicker(name="To", width=160)
    to_time_input = pn.widgets.TextInput(name="End Time", placeholder="HH:MM", width=100)
    field_errors = pn.pane.Markdown("", styles={"color": "#dc3545"})

    predict_btn = pn.widgets.Button(name="Predict Energy", button_type="primary", width=150)
    cancel_btn = pn.widgets.Button(name="Cancel", button_type="default", width=100, disabled=True)

    alert = pn.pane.Alert("", alert_type='light', visible=False)

    results_display = pn.widgets.Tabulator(
        empty_results_frame(),
        name="Daily Energy",
        height=300,
        disabled=True,
        show_index=False,
        sizing_mode='stretch_width'
    )

    def export_callback():
        state = current['state']
        rows = list(state.last_data) if state is not None else []
        return io.StringIO(to_export_csv(rows))

    download_btn = pn.widgets.FileDownload(
        callback=export_callback,
        filename=settings.export_filename,
        label="Download Prediction Data",
        button_type="primary",
        visible=False,
        width=250,
    )

    layout = pn.Column(
        pn.pane.Markdown("# Energy Consumption Prediction"),
        alert,
        pn.Row(from_date_input, from_time_input, to_date_input, to_time_input),
        field_errors,
        pn.Row(predict_btn, cancel_btn),
        results_display,
        download_btn,
    )

    # ===== Helper Functions =====

    def collect_request() -> PredictionRequest:
        return PredictionRequest(
            from_date=from_date_input.value.isoformat() if from_date_input.value else "",
            from_time=from_time_input.value,
            to_date=to_date_input.value.isoformat() if to_date_input.value else "",
            to_time=to_time_input.value,
            username=username,
        )

    def show_alert(message: str, alert_type: str):
        alert.object = message
        alert.alert_type = alert_type
        alert.visible = bool(message)

    def render_state(state: PollState):
        """Subscriber: mirror one PollState snapshot into the widgets."""
        current['state'] = state
        pending = state.is_pending
        predict_btn.loading = pending
        predict_btn.disabled = pending
        predict_btn.name = "Processing..." if pending else "Predict Energy"
        cancel_btn.disabled = not pending
        show_alert(state.message, ALERT_TYPES[state.status])

        if not state.last_data:
            results_display.value = empty_results_frame()
            download_btn.visible = False
            return
        try:
            results_display.value = daily_summary_frame(aggregate_daily(state.last_data))
        except InvalidTimestampFormat as e:
            results_display.value = empty_results_frame()
            download_btn.visible = False
            show_alert(str(e), 'danger')
            return
        download_btn.visible = state.status == PollStatus.SUCCEEDED

    def release_handle():
        handle: PollHandle | None = current['handle']
        if handle is not None:
            handle.cancel()
        if current['unsubscribe'] is not None:
            current['unsubscribe']()
        current['handle'] = None
        current['unsubscribe'] = None

    # ===== Callbacks =====

    async def on_predict(event):
        request = collect_request()
        errors = request.validate()
        field_errors.object = "\n".join(f"- {message}" for message in errors.values())
        if errors:
            return

        release_handle()
        results_display.value = empty_results_frame()
        download_btn.visible = False
        show_alert("Prediction in progress. Please wait...", 'warning')
        predict_btn.loading = True
        try:
            handle = await controller.start(request)
        except SubmitError as e:
            show_alert(e.message, 'danger')
            predict_btn.loading = False
            return
        current['handle'] = handle
        current['unsubscribe'] = handle.subscribe(render_state)

    def on_cancel(event):
        release_handle()
        predict_btn.loading = False
        predict_btn.disabled = False
        predict_btn.name = "Predict Energy"
        cancel_btn.disabled = True

    def on_session_destroyed(session_context):
        release_handle()

    # ===== Wire up callbacks =====
    predict_btn.on_click(on_predict)
    cancel_btn.on_click(on_cancel)
    if pn.state.curdoc is not None:
        pn.state.on_session_destroyed(on_session_destroyed)

    return layout


def create_app(settings: Settings | None = None):
    """Create and return the energy prediction Panel application."""
    settings = settings or load_settings()
    configure_logging(settings)
    client = ApiClient.from_settings(settings)
    controller = PollController.from_settings(client, settings)
    layout = create_prediction_ui(controller, username=session_username(), settings=settings)
    if pn.state.curdoc is not None:
        pn.state.on_session_destroyed(make_session_cleanup(client))
    return layout


if __name__.startswith("bokeh"):
    create_app().servable()


if __name__ == "__main__":
    pn.serve(create_app, show=True, port=5006)
