from __future__ import annotations

import functools
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from urllib.parse import urlparse

from flask import Flask, flash, g, jsonify, redirect, render_template, request, session, url_for

from detailing.api import Api, ApiError
from detailing.config import AppConfig, ConfigError, load_config
from detailing.domain import Order, WorkType, select_by_id, selected_or_none, to_decimal
from detailing.identity import Identity
from detailing.mapping import format_datetime, parse_datetime
from detailing.reports import format_cell, master_detail, week_range, weekly_summary
from detailing.repositories.auth_repo import AuthRepository
from detailing.repositories.dictionary_repo import DictionaryRepository
from detailing.repositories.order_repo import OrderRepository
from detailing.repositories.report_repo import ReportRepository
from detailing.repositories.user_repo import UserRepository
from detailing.schedule import STATUS_FILTERS, fetch_events, move_event, resolve_filters
from detailing.services.dictionary_service import (
    DictionaryService,
    add_part,
    rename_part,
    toggle_part_active,
)
from detailing.services.order_service import (
    STATUS_LABELS,
    OrderFormSession,
    ValidationError,
    available_transitions,
    request_status_change,
)
from detailing.services.user_service import (
    ensure,
    validate_new_user,
    validate_password_change,
    validate_profile,
    validate_roles,
)

logger = logging.getLogger(__name__)

app = Flask(__name__, template_folder="../templates")
app.secret_key = "change-this-secret-key-in-production"
app.jinja_env.globals.update(format_cell=format_cell, status_labels=STATUS_LABELS)

VALIDATED_KEY = "token_validated"

api: Api | None = None
cfg: AppConfig | None = None
event_duration = timedelta(hours=1)
auth_repo = AuthRepository()
order_repo = OrderRepository()
dictionary_repo = DictionaryRepository()
user_repo = UserRepository()
report_repo = ReportRepository()


def configure(config: AppConfig, api_client: Api) -> Flask:
    global api, cfg, event_duration
    cfg = config
    api = api_client
    event_duration = timedelta(minutes=config.business.event_duration_minutes)
    app.secret_key = config.web.secret_key
    return app


# Identity


@app.before_request
def load_identity():
    identity = Identity(session, api=api, auth_repo=auth_repo)
    if session.get(VALIDATED_KEY):
        identity.resume()
    elif identity.restore():
        session[VALIDATED_KEY] = True
    g.identity = identity


def login_required(view):
    @functools.wraps(view)
    def wrapped(*args, **kwargs):
        if not g.identity.is_authenticated:
            return redirect(url_for("login", next=request.path))
        return view(*args, **kwargs)

    return wrapped


def admin_required(view):
    @functools.wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not g.identity.is_admin:
            flash("Недостаточно прав", "warning")
            return redirect(url_for("index"))
        return view(*args, **kwargs)

    return wrapped


def backend():
    return api.session(g.identity.token)


def local_target(target: str | None) -> str:
    """Redirect target limited to paths on this site; anything else goes to the calendar."""
    if target and target.startswith("/") and "\\" not in target:
        parts = urlparse(target)
        if not parts.scheme and not parts.netloc:
            return target
    return url_for("index")


@app.context_processor
def inject_identity():
    return {"identity": getattr(g, "identity", None)}


@app.route("/login", methods=["GET", "POST"])
def login():
    if g.identity.is_authenticated:
        return redirect(url_for("index"))

    if request.method == "POST":
        username = request.form.get("username", "")
        try:
            g.identity.authenticate(username, request.form.get("password", ""))
            session.permanent = True
            session[VALIDATED_KEY] = True
            return redirect(local_target(request.args.get("next")))
        except ValidationError as e:
            flash(e.errors["credentials"], "warning")
        except ApiError as e:
            if e.status_code in (400, 401, 403):
                flash("Неверное имя пользователя или пароль", "danger")
            else:
                flash(f"Ошибка входа: {e}", "danger")
        return render_template("login.html", username=username)

    return render_template("login.html", username="")


@app.route("/logout")
def logout():
    g.identity.logout()
    session.pop(VALIDATED_KEY, None)
    return redirect(url_for("login"))


# Calendar


@app.route("/")
@app.route("/calendar")
@login_required
def index():
    filters = resolve_filters(g.identity, request.args.get("master"), request.args.get("status"))
    masters = []
    if not filters.master_locked:
        try:
            with backend() as s:
                masters = user_repo.list_by_role(s, "MASTER")
        except ApiError as e:
            flash(f"Не удалось загрузить мастеров: {e}", "danger")
    return render_template(
        "calendar.html",
        filters=filters,
        masters=masters,
        statuses=STATUS_FILTERS,
    )


@app.route("/calendar/events")
@login_required
def calendar_events():
    filters = resolve_filters(g.identity, request.args.get("master"), request.args.get("status"))
    try:
        start = parse_datetime(request.args["start"])
        end = parse_datetime(request.args["end"])
    except (KeyError, ValueError):
        return jsonify({"error": "start and end are required ISO dates"}), 400

    try:
        with backend() as s:
            events = fetch_events(
                s,
                order_repo,
                start=start,
                end=end,
                filters=filters,
                duration=event_duration,
            )
    except ApiError as e:
        logger.error("Calendar load failed: %s", e)
        return jsonify({"error": str(e)}), 502

    return jsonify(
        [
            {
                "id": ev.id,
                "title": ev.title,
                "start": format_datetime(ev.start),
                "end": format_datetime(ev.end),
                "className": f"event-status-{ev.status}",
                "extendedProps": {
                    "clientName": ev.client_name,
                    "clientPhone": ev.client_phone,
                    "carBrand": ev.car_brand.name if ev.car_brand else None,
                    "workTypes": list(ev.work_types),
                    "status": ev.status,
                    "statusLabel": STATUS_LABELS.get(ev.status, ev.status),
                    "transitions": list(available_transitions(ev.status)),
                },
            }
            for ev in events
        ]
    )


@app.route("/calendar/events/<int:order_id>/move", methods=["POST"])
@login_required
def calendar_move(order_id):
    data = request.get_json(silent=True) or {}
    try:
        new_start = parse_datetime(str(data["start"]))
    except (KeyError, ValueError):
        return jsonify({"ok": False, "error": "start is required"}), 400

    with backend() as s:
        result = move_event(s, order_repo, order_id, new_start)
    if result.ok:
        return jsonify({"ok": True, "start": format_datetime(result.start)})
    return (
        jsonify(
            {
                "ok": False,
                "error": result.error,
                "revertTo": format_datetime(result.start) if result.start else None,
            }
        ),
        409,
    )


# Orders


def _int_or_none(value: str | None) -> int | None:
    try:
        return int(value) if value else None
    except ValueError:
        return None


def _decimal_or_none(value: str | None) -> Decimal | None:
    try:
        return to_decimal(value)
    except ValueError:
        return None


def _datetime_or_none(value: str | None) -> datetime | None:
    try:
        return parse_datetime(value) if value else None
    except ValueError:
        return None


def _optional_text(form, name: str, current: str | None) -> str | None:
    """Free-text field; an untouched field keeps the value it was rendered from ("" and None alike)."""
    value = form.get(name, "").strip()
    if value == (current or "").strip():
        return current
    return value or None


def _order_from_form(form_session: OrderFormSession, form, order: Order) -> Order:
    d = form_session.dictionaries
    order.client_name = form.get("client_name", "").strip()
    order.client_phone = form.get("client_phone", "").strip()
    order.car_brand = select_by_id(d.brands, _int_or_none(form.get("car_brand")))
    order.vin = _optional_text(form, "vin", order.vin)
    order.info_source = select_by_id(d.info_sources, _int_or_none(form.get("info_source")))
    order.execution_date = _datetime_or_none(form.get("execution_date"))
    order.order_cost = _decimal_or_none(form.get("order_cost"))
    order.execution_time_by_master = _optional_text(form, "execution_time_by_master", order.execution_time_by_master)

    checked = {i for i in (_int_or_none(x) for x in form.getlist("work_type")) if i is not None}
    order.works = [w for w in order.works if getattr(selected_or_none(w.work_type), "id", None) in checked]
    for work_type in d.work_types:
        if work_type.id in checked:
            form_session.toggle_work_type(order, work_type.id, True)

    master_ids = {m.id for m in d.masters}
    for index, work in enumerate(order.works):
        work_type = selected_or_none(work.work_type)
        prefix = f"work-{work_type.id}"
        work.cost = _decimal_or_none(form.get(f"{prefix}-cost"))
        work.comment = _optional_text(form, f"{prefix}-comment", work.comment)

        wanted_parts = {_int_or_none(x) for x in form.getlist(f"{prefix}-part")}
        work.parts = [p for p in work.parts if p.id in wanted_parts]
        for part in form_session.parts_for(work_type):
            form_session.toggle_part(order, work_type.id, part.id, part.id in wanted_parts)

        wanted_masters = {_int_or_none(x) for x in form.getlist(f"{prefix}-master")}
        for assignment in list(work.assignments):
            master = selected_or_none(assignment.master)
            if master is not None and master.id not in wanted_masters:
                form_session.toggle_master(order, index, master.id, False)
        for master_id in wanted_masters & master_ids:
            form_session.toggle_master(order, index, master_id, True)
        for assignment in work.assignments:
            master = selected_or_none(assignment.master)
            if master is not None:
                assignment.salary_percent = _decimal_or_none(form.get(f"{prefix}-percent-{master.id}"))
    return order


def _work_rows(form_session: OrderFormSession, order: Order) -> list[dict]:
    """One row per selectable work type, including types no longer in the dictionary."""
    choices: list[WorkType] = list(form_session.dictionaries.work_types)
    known = {wt.id for wt in choices}
    for work in order.works:
        work_type = selected_or_none(work.work_type)
        if work_type is not None and work_type.id not in known:
            choices.append(work_type)

    rows = []
    for work_type in choices:
        index = order.work_index(work_type.id)
        rows.append(
            {
                "work_type": work_type,
                "index": index,
                "work": order.works[index] if index is not None else None,
                "parts": form_session.dictionaries.parts_by_code.get(work_type.code, []),
            }
        )
    return rows


def _render_order_form(form_session: OrderFormSession, order: Order, errors: dict | None = None):
    return render_template(
        "order_form.html",
        order=order,
        d=form_session.dictionaries,
        rows=_work_rows(form_session, order),
        errors=errors or {},
        brand_id=getattr(selected_or_none(order.car_brand), "id", None),
        info_source_id=getattr(selected_or_none(order.info_source), "id", None),
        execution_date=format_datetime(order.execution_date) if order.execution_date else "",
        transitions=available_transitions(order.status) if order.id else (),
        selected_or_none=selected_or_none,
    )


def _order_form(order_id: int | None):
    with backend() as s:
        form_session = OrderFormSession(
            s,
            order_repo=order_repo,
            dictionary_repo=dictionary_repo,
            user_repo=user_repo,
        )
        try:
            try:
                form_session.load_dictionaries()
                order = form_session.load_order(order_id) if order_id else form_session.new_order()
            except ApiError as e:
                flash(f"Не удалось загрузить данные формы: {e}", "danger")
                return render_template("error.html", title="Заказ"), 502

            if request.method == "GET":
                return _render_order_form(form_session, order)

            _order_from_form(form_session, request.form, order)
            if request.form.get("action") == "refresh":
                return _render_order_form(form_session, order)

            try:
                saved_id = form_session.submit(order)
            except ValidationError as e:
                return _render_order_form(form_session, order, e.errors), 422
            except ApiError as e:
                flash(f"Произошла ошибка при сохранении заказа: {e}", "danger")
                return _render_order_form(form_session, order), 502

            flash("Заказ успешно обновлён!" if order_id else "Заказ успешно создан!", "success")
            if saved_id is None:
                return redirect(url_for("index"))
            return redirect(url_for("order_edit", order_id=saved_id))
        finally:
            form_session.close()


@app.route("/orders/new", methods=["GET", "POST"])
@login_required
def order_new():
    return _order_form(None)


@app.route("/orders/<int:order_id>", methods=["GET", "POST"])
@login_required
def order_edit(order_id):
    return _order_form(order_id)


@app.route("/orders/<int:order_id>/status", methods=["POST"])
@login_required
def order_status(order_id):
    code = request.form.get("code", "").upper()
    master_id = g.identity.user.id if g.identity.is_master_only else None
    try:
        with backend() as s:
            # the page may be stale; check against what the backend has now
            current = order_repo.get(s, order_id).status
            request_status_change(
                s,
                order_repo,
                order_id=order_id,
                current_status=current,
                code=code,
                master_id=master_id,
            )
        flash(f"Статус заказа №{order_id}: {STATUS_LABELS.get(code, code)}", "success")
    except ValidationError as e:
        flash(e.errors["status"], "warning")
    except ApiError as e:
        flash(f"Не удалось изменить статус: {e}", "danger")

    return redirect(local_target(request.form.get("next")))


# Profile and users


@app.route("/profile", methods=["GET", "POST"])
@login_required
def profile():
    user = g.identity.user
    errors: dict = {}
    if request.method == "POST":
        try:
            with backend() as s:
                if request.form.get("action") == "password":
                    current = request.form.get("current_password", "")
                    new = request.form.get("new_password", "")
                    ensure(validate_password_change(current, new, request.form.get("confirm_password", "")))
                    try:
                        user_repo.change_password(s, username=user.username, old_password=current, new_password=new)
                    except ApiError:
                        errors = {"currentPassword": "Неверный текущий пароль"}
                        flash("Ошибка при смене пароля. Проверьте текущий пароль.", "danger")
                        return render_template("profile.html", user=user, errors=errors)
                    flash("Пароль успешно обновлен!", "success")
                else:
                    first_name = request.form.get("first_name", "").strip()
                    last_name = request.form.get("last_name", "").strip()
                    ensure(validate_profile(first_name, last_name))
                    user_repo.update(s, user.id, first_name=first_name, last_name=last_name)
                    updated = user_repo.get(s, user.id)
                    g.identity.login(g.identity.token, updated)
                    user = updated
                    flash("Данные профиля обновлены!", "success")
        except ValidationError as e:
            errors = e.errors
        except ApiError as e:
            flash(f"Ошибка при обновлении данных: {e}", "danger")
    return render_template("profile.html", user=user, errors=errors)


@app.route("/users")
@admin_required
def users_list():
    try:
        with backend() as s:
            rows = user_repo.list_all(s)
        return render_template("users_list.html", users=rows)
    except ApiError as e:
        flash(f"Не удалось загрузить список пользователей: {e}", "danger")
        return render_template("error.html", title="Пользователи"), 502


@app.route("/users/new", methods=["GET", "POST"])
@admin_required
def users_new():
    try:
        with backend() as s:
            roles = user_repo.list_roles(s)
    except ApiError as e:
        flash(f"Ошибка загрузки ролей: {e}", "danger")
        return render_template("error.html", title="Новый пользователь"), 502

    form = request.form
    errors: dict = {}
    if request.method == "POST":
        role_ids = [i for i in (_int_or_none(x) for x in form.getlist("role")) if i is not None]
        try:
            ensure(
                validate_new_user(
                    first_name=form.get("first_name", ""),
                    last_name=form.get("last_name", ""),
                    phone=form.get("phone", ""),
                    password=form.get("password", ""),
                    confirm_password=form.get("confirm_password", ""),
                    role_ids=role_ids,
                )
            )
            with backend() as s:
                user_repo.create(
                    s,
                    first_name=form["first_name"].strip(),
                    last_name=form["last_name"].strip(),
                    phone=form["phone"].strip(),
                    username=(form.get("username") or form["phone"]).strip(),
                    password=form["password"],
                    roles=[r for r in roles if r.id in role_ids],
                )
            flash("Пользователь успешно создан!", "success")
            return redirect(url_for("users_list"))
        except ValidationError as e:
            errors = e.errors
        except ApiError as e:
            flash(f"Ошибка при создании пользователя: {e}", "danger")
    return render_template("user_form.html", roles=roles, form=form, errors=errors)


@app.route("/users/<int:user_id>/roles", methods=["GET", "POST"])
@admin_required
def user_roles(user_id):
    try:
        with backend() as s:
            user = user_repo.get(s, user_id)
            roles = user_repo.list_roles(s)
    except ApiError as e:
        flash(f"Ошибка загрузки данных пользователя: {e}", "danger")
        return render_template("error.html", title="Роли"), 502

    selected = {r.id for r in user.roles}
    errors: dict = {}
    if request.method == "POST":
        role_ids = [i for i in (_int_or_none(x) for x in request.form.getlist("role")) if i is not None]
        selected = set(role_ids)
        try:
            ensure(validate_roles(role_ids))
            with backend() as s:
                user_repo.update_roles(s, user_id, role_ids)
            flash("Роли пользователя успешно обновлены!", "success")
            return redirect(url_for("users_list"))
        except ValidationError as e:
            errors = e.errors
        except ApiError as e:
            flash(f"Не удалось обновить роли: {e}", "danger")
    return render_template("user_roles.html", user=user, roles=roles, selected=selected, errors=errors)


# Reports


def _report_week() -> tuple[date, datetime, datetime]:
    try:
        pivot = date.fromisoformat(request.args.get("date", ""))
    except ValueError:
        pivot = date.today()
    start, end = week_range(pivot)
    return pivot, start, end


@app.route("/reports/masters")
@admin_required
def report_masters():
    pivot, start, end = _report_week()
    try:
        with backend() as s:
            reports = report_repo.masters_weekly(s, start=start, end=end)
    except ApiError as e:
        flash(f"Не удалось загрузить отчет. Попробуйте позже. ({e})", "danger")
        return render_template("error.html", title="Отчет"), 502
    return render_template(
        "report_masters.html",
        table=weekly_summary(reports),
        start=start,
        end=end,
        prev_week=(pivot - timedelta(days=7)).isoformat(),
        next_week=(pivot + timedelta(days=7)).isoformat(),
    )


@app.route("/reports/master/<int:master_id>")
@login_required
def report_master(master_id):
    identity = g.identity
    if not identity.is_admin and identity.user.id != master_id:
        flash("Недостаточно прав", "warning")
        return redirect(url_for("index"))

    pivot, start, end = _report_week()
    try:
        with backend() as s:
            report = report_repo.master_detail(s, master_id, start=start, end=end)
    except ApiError as e:
        flash(f"Не удалось загрузить детальный отчет. ({e})", "danger")
        return render_template("error.html", title="Отчет"), 502
    return render_template(
        "report_master.html",
        report=report,
        table=master_detail(report),
        start=start,
        end=end,
        prev_week=(pivot - timedelta(days=7)).isoformat(),
        next_week=(pivot + timedelta(days=7)).isoformat(),
    )


# Work type dictionary


@app.route("/dictionary", methods=["GET", "POST"])
@admin_required
def dictionary():
    service = DictionaryService(dictionary_repo)
    errors: dict = {}
    if request.method == "POST":
        try:
            with backend() as s:
                service.add_work_type(s, name=request.form.get("name", ""), code=request.form.get("code", ""))
            flash("Тип работы добавлен", "success")
            return redirect(url_for("dictionary"))
        except ValidationError as e:
            errors = e.errors
        except ApiError as e:
            flash(f"Ошибка при добавлении типа работы: {e}", "danger")

    try:
        with backend() as s:
            tree = service.load_tree(s)
    except ApiError as e:
        flash(f"Не удалось загрузить справочник: {e}", "danger")
        return render_template("error.html", title="Справочник"), 502
    return render_template("dictionary.html", tree=tree, errors=errors, form=request.form)


@app.route("/dictionary/<int:work_type_id>/toggle", methods=["POST"])
@admin_required
def dictionary_toggle(work_type_id):
    service = DictionaryService(dictionary_repo)
    try:
        with backend() as s:
            node = service.get(s, work_type_id)
            if node is None:
                flash("Тип работы не найден", "warning")
            else:
                service.toggle_active(s, node)
    except ApiError as e:
        flash(f"Ошибка при обновлении статуса: {e}", "danger")
    return redirect(url_for("dictionary"))


@app.route("/dictionary/<int:work_type_id>/delete", methods=["POST"])
@admin_required
def dictionary_delete(work_type_id):
    try:
        with backend() as s:
            DictionaryService(dictionary_repo).delete_work_type(s, work_type_id)
        flash("Тип работы удалён", "success")
    except ApiError as e:
        flash(f"Ошибка при удалении типа работы: {e}", "danger")
    return redirect(url_for("dictionary"))


@app.route("/dictionary/<int:work_type_id>", methods=["GET", "POST"])
@admin_required
def dictionary_edit(work_type_id):
    service = DictionaryService(dictionary_repo)
    try:
        with backend() as s:
            node = service.get(s, work_type_id)
    except ApiError as e:
        flash(f"Не удалось загрузить справочник: {e}", "danger")
        return render_template("error.html", title="Справочник"), 502
    if node is None:
        flash("Тип работы не найден", "warning")
        return redirect(url_for("dictionary"))

    errors: dict = {}
    if request.method == "POST":
        form = request.form
        node.name = form.get("name", "")
        node.description = form.get("description", "")
        try:
            for i, part in enumerate(node.parts):
                if (form.get(f"part-{i}-active") == "on") != part.active:
                    toggle_part_active(node, i)
                new_name = form.get(f"part-{i}-name", part.name)
                if new_name.strip() != part.name:
                    rename_part(node, i, new_name)
            if form.get("new_part", "").strip():
                add_part(node, form["new_part"])

            with backend() as s:
                service.save_work_type(s, node)
            flash(f"Тип работы «{node.name}» и его части успешно обновлены!", "success")
            return redirect(url_for("dictionary_edit", work_type_id=work_type_id))
        except ValidationError as e:
            errors = e.errors
        except ApiError as e:
            flash(f"Ошибка при сохранении данных. Попробуйте еще раз. ({e})", "danger")
    return render_template("dictionary_edit.html", node=node, errors=errors)


if __name__ == "__main__":
    try:
        config = load_config("config.toml")
        logging.basicConfig(
            level=config.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        configure(config, Api(config.api))
        app.run(debug=config.web.debug, host=config.web.host, port=config.web.port)
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        raise SystemExit(2)
