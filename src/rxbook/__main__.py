"""
Command-line interface for rxbook.

A thin front end over the record store: every command calls the core,
then reports the outcome through the notifier (coloured by severity).
"""

import base64
import dataclasses
import datetime
import functools
import logging
import mimetypes
import pathlib
import sys
import typing

import click

from . import notify
from .auth import AuthGate
from .config import Settings
from .errors import ImportInProgress, ImportParseFailed, PersistenceError, RecordError
from .notify import ERROR, WARNING, Notification, Notifier
from .record import PatientRecord, RecordDraft
from .storage import SlotStorage
from .store import RecordStore
from .transfer import export_workbook, import_workbook

logger = logging.getLogger(__name__)

# click option name → RecordDraft attribute, for the flat fields
TEXT_OPTIONS = {
    "date": "date",
    "name": "patient_name",
    "mobile": "mobile_number",
    "frame_price": "frame_price",
    "glass_price": "glass_price",
    "remarks": "remarks",
}
EYE_FIELDS = ("sphere", "cylinder", "axis", "add")


def _echo_notification(notification: Notification) -> None:
    line = f"{notification.title}: {notification.description}"
    # color by level
    if notification.severity == ERROR:
        click.echo(click.style(line, fg="red"), err=True)
    elif notification.severity == WARNING:
        click.echo(click.style(line, fg="yellow"), err=True)
    else:
        click.echo(click.style(line, fg="cyan"))


def _configure_logging(verbose_logging: bool, log_file_path: typing.Optional[str]) -> None:
    handlers: list[logging.Handler] = []
    if log_file_path:
        handlers.append(logging.FileHandler(log_file_path, mode="a", encoding="utf-8"))
    if verbose_logging:
        handlers.append(logging.StreamHandler(sys.stderr))
    if handlers:
        logging.basicConfig(
            level=logging.DEBUG if verbose_logging else logging.INFO,
            format="%(asctime)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=handlers,
        )


class App:
    """Objects shared by every command; the store is opened on first use."""

    def __init__(self, settings: Settings, sink=_echo_notification):
        self.settings = settings
        self.storage = SlotStorage(settings.data_dir)
        self.notify = Notifier(sink)
        self.gate = AuthGate(self.storage, settings.login_email, settings.login_password)
        self._store: typing.Optional[RecordStore] = None

    @property
    def store(self) -> RecordStore:
        if self._store is None:
            self._store = RecordStore(self.storage)
            if self._store.load_error is not None:
                self.notify(notify.load_failed(self._store.load_error))
        return self._store


def protected(command):
    """Refuse to run `command` unless the auth gate lets the user through."""

    @functools.wraps(command)
    def wrapper(app: App, *args, **kwargs):
        if not app.gate.is_authenticated():
            app.notify(notify.login_required())
            sys.exit(1)
        return command(app, *args, **kwargs)

    return wrapper


def record_options(command):
    """Attach one option per record field (all optional)."""
    options = [
        click.option("--date", default=None, help="examination date, YYYY-MM-DD"),
        click.option("--name", default=None, help="patient name"),
        click.option("--mobile", default=None, help="mobile number (unique)"),
    ]
    for side in ("right", "left"):
        for fld in EYE_FIELDS:
            options.append(
                click.option(f"--{side}-{fld}", default=None, help=f"{side} eye {fld}")
            )
    options += [
        click.option("--frame-price", default=None, help="frame price"),
        click.option("--glass-price", default=None, help="glass price"),
        click.option("--remarks", default=None, help="remarks"),
        click.option(
            "--image",
            "image_path",
            type=click.Path(exists=True, dir_okay=False),
            default=None,
            help="prescription photo to attach",
        ),
    ]
    for option in reversed(options):
        command = option(command)
    return command


def read_image_payload(path: str) -> str:
    """Encode an image file as a data URL; the payload is stored as-is."""
    mime, _ = mimetypes.guess_type(path)
    data = pathlib.Path(path).read_bytes()
    return f"data:{mime or 'application/octet-stream'};base64,{base64.b64encode(data).decode('ascii')}"


def apply_options(base: RecordDraft, values: dict) -> RecordDraft:
    """Return `base` with every option that was given (not None) applied."""
    changes: dict[str, typing.Any] = {
        attr: values[opt] for opt, attr in TEXT_OPTIONS.items() if values.get(opt) is not None
    }
    for side, attr in (("right", "right_eye"), ("left", "left_eye")):
        eye_changes = {
            fld: values[f"{side}_{fld}"]
            for fld in EYE_FIELDS
            if values.get(f"{side}_{fld}") is not None
        }
        if eye_changes:
            changes[attr] = dataclasses.replace(getattr(base, attr), **eye_changes)
    if values.get("image_path"):
        changes["prescription_image"] = read_image_payload(values["image_path"])
    return dataclasses.replace(base, **changes)


def _format_row(cells: typing.Sequence[str]) -> str:
    widths = (32, 10, 24, 14, 28, 28)
    return "  ".join(str(cell).ljust(width) for cell, width in zip(cells, widths)).rstrip()


def _print_table(records: typing.Sequence[PatientRecord]) -> None:
    click.echo(_format_row(("ID", "DATE", "NAME", "MOBILE", "RIGHT EYE", "LEFT EYE")))
    for r in records:
        click.echo(_format_row((
            r.id, r.date, r.patient_name, r.mobile_number,
            r.right_eye.summary(), r.left_eye.summary(),
        )))


@click.group()
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="directory holding the record files (default: $RXBOOK_DATA_DIR or ~/.rxbook)",
)
@click.option("--verbose-logging", is_flag=True, help="Also emit debug logs to stderr")
@click.option(
    "--log-file-path",
    type=click.Path(dir_okay=False, writable=True),
    help="Append timestamped logs to this file",
)
@click.pass_context
def main(ctx: click.Context, data_dir: typing.Optional[str], verbose_logging: bool, log_file_path: typing.Optional[str]):
    """rxbook: patient vision-record manager."""
    _configure_logging(verbose_logging, log_file_path)
    settings = Settings.from_env()
    if data_dir:
        settings.data_dir = pathlib.Path(data_dir).expanduser()
    if ctx.obj is None:
        ctx.obj = App(settings)


@main.command(name="list")
@click.pass_obj
@protected
def list_records(app: App):
    """List every record in store order."""
    _print_table(app.store.records)


@main.command(name="search")
@click.argument("query", default="")
@click.pass_obj
@protected
def search(app: App, query: str):
    """Find records by (part of) the patient name or mobile number."""
    results = app.store.search(query)
    if not results:
        click.echo("No records match your search" if query.strip() else "No patient records found")
        return
    _print_table(results)


@main.command(name="show")
@click.argument("record_id")
@click.pass_obj
@protected
def show(app: App, record_id: str):
    """Print every field of one record."""
    record = app.store.get_by_id(record_id)
    if record is None:
        app.notify(Notification("Record not found", f"No record with id {record_id!r}", ERROR))
        sys.exit(1)
    click.echo(f"ID:           {record.id}")
    click.echo(f"Date:         {record.date}")
    click.echo(f"Patient Name: {record.patient_name}")
    click.echo(f"Mobile:       {record.mobile_number}")
    click.echo(f"Right Eye:    {record.right_eye.summary()}")
    click.echo(f"Left Eye:     {record.left_eye.summary()}")
    click.echo(f"Frame Price:  {record.frame_price}")
    click.echo(f"Glass Price:  {record.glass_price}")
    click.echo(f"Remarks:      {record.remarks}")
    image = f"yes ({len(record.prescription_image)} chars)" if record.has_image else "no"
    click.echo(f"Prescription: {image}")


@main.command(name="add")
@record_options
@click.pass_obj
@protected
def add(app: App, **values):
    """Create a new record. Date defaults to today."""
    base = RecordDraft(date=datetime.date.today().isoformat())
    draft = apply_options(base, values)
    try:
        record_id = app.store.add(draft)
    except RecordError as e:
        app.notify(notify.record_failed(e))
        sys.exit(1)
    app.notify(notify.record_added(draft))
    click.echo(record_id)


@main.command(name="update")
@click.argument("record_id")
@record_options
@click.option("--clear-image", is_flag=True, help="remove the attached prescription photo")
@click.pass_obj
@protected
def update(app: App, record_id: str, clear_image: bool, **values):
    """Change fields of an existing record; options not given keep their value."""
    current = app.store.get_by_id(record_id)
    if current is None:
        app.notify(Notification("Record not found", f"No record with id {record_id!r}", ERROR))
        sys.exit(1)
    draft = apply_options(current.to_draft(), values)
    if clear_image:
        draft = dataclasses.replace(draft, prescription_image=None)
    try:
        app.store.update(record_id, draft)
    except RecordError as e:
        app.notify(notify.record_failed(e, updating=True))
        sys.exit(1)
    app.notify(notify.record_updated(draft))


@main.command(name="delete")
@click.argument("record_id")
@click.option("--yes", is_flag=True, help="do not ask for confirmation")
@click.pass_obj
@protected
def delete(app: App, record_id: str, yes: bool):
    """Delete one record."""
    record = app.store.get_by_id(record_id)
    if record is None:
        app.notify(Notification("Record not found", f"No record with id {record_id!r}", ERROR))
        sys.exit(1)
    if not yes:
        click.confirm(f"Delete the record for {record.patient_name}?", abort=True)
    try:
        app.store.delete(record_id)
    except RecordError as e:
        app.notify(notify.record_failed(e))
        sys.exit(1)
    app.notify(notify.record_deleted(record))


@main.command(name="export")
@click.option(
    "-d",
    "--directory",
    default=".",
    type=click.Path(file_okay=False),
    help="where to write the workbook (default: current directory)",
)
@click.pass_obj
@protected
def export(app: App, directory: str):
    """Export every record to a dated Excel workbook."""
    try:
        path = export_workbook(app.store, directory, app.settings.export_prefix)
    except (OSError, ValueError) as e:
        logger.error(f"Export failed: {e}")
        app.notify(notify.export_failed(e))
        sys.exit(1)
    app.notify(notify.export_succeeded(path))


@main.command(name="import")
@click.argument("workbook_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--verbose", is_flag=True, help="Show every skipped row and schema warning")
@click.pass_obj
@protected
def import_(app: App, workbook_path: str, verbose: bool):
    """Import records from the first sheet of an Excel workbook."""
    try:
        summary = import_workbook(app.store, workbook_path)
    except (ImportParseFailed, ImportInProgress) as e:
        logger.error(f"Import of {workbook_path!r} failed: {e}")
        app.notify(notify.import_failed(e))
        sys.exit(1)
    except PersistenceError as e:
        app.notify(notify.record_failed(e))
        sys.exit(1)

    app.notify(notify.import_succeeded(summary))
    if verbose:
        _report_import_details(summary)


def _report_import_details(summary) -> None:
    if summary.warnings:
        click.echo("Warnings found in workbook:")
        for w in summary.warnings:
            click.echo(f"- {w}")
    if summary.rejections:
        click.echo("Skipped rows:")
        for rejection in summary.rejections:
            click.echo(
                f"- import row {rejection.position + 1}: {rejection.reason} "
                f"({rejection.mobile_number or 'no mobile number'})"
            )


@main.command(name="login")
@click.option("--email", prompt=True)
@click.option("--password", prompt=True, hide_input=True)
@click.pass_obj
def login(app: App, email: str, password: str):
    """Sign in (only needed when RXBOOK_LOGIN_EMAIL/PASSWORD are set)."""
    if not app.gate.enabled:
        click.echo("Login is not configured; all commands are available.")
        return
    ok = app.gate.login(email, password)
    app.notify(notify.login_result(ok))
    if not ok:
        sys.exit(1)


@main.command(name="logout")
@click.pass_obj
def logout(app: App):
    """Sign out."""
    try:
        app.gate.logout()
    except PersistenceError as e:
        app.notify(notify.record_failed(e))
        sys.exit(1)
    app.notify(notify.logged_out())


if __name__ == "__main__":
    main()
