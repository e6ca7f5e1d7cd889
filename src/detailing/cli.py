from __future__ import annotations

from datetime import datetime, timedelta

from .api import Api, ApiError
from .domain import select_by_id, selected_or_none, to_decimal
from .identity import Identity
from .importers import DataImportError, import_work_types_json
from .mapping import parse_datetime
from .reports import format_cell, master_detail, week_range, weekly_summary
from .repositories.dictionary_repo import DictionaryRepository
from .repositories.order_repo import OrderRepository
from .repositories.report_repo import ReportRepository
from .repositories.user_repo import UserRepository
from .schedule import default_filters, fetch_events
from .services.dictionary_service import DictionaryService
from .services.order_service import (
    STATUS_LABELS,
    OrderFormSession,
    ValidationError,
    available_transitions,
    request_status_change,
)


def _prompt(msg: str) -> str:
    return input(msg).strip()


def _ids(text: str) -> list[int]:
    return [int(x) for x in text.replace(" ", "").split(",") if x]


def _print_table(table) -> None:
    print(" | ".join(["", *table.columns]))
    for row in table.rows:
        print(" | ".join([row.label, *(format_cell(c) for c in row.cells)]))
    print(" | ".join(["Σ", *(f"{v:.2f}" for v in table.footer)]))


def _create_order(form: OrderFormSession) -> None:
    d = form.load_dictionaries()
    order = form.new_order()

    order.client_name = _prompt("client name: ")
    order.client_phone = _prompt("client phone: ")
    for b in d.brands:
        print(f"  #{b.id} {b.name}")
    brand_in = _prompt("car brand id: ")
    order.car_brand = select_by_id(d.brands, int(brand_in)) if brand_in else order.car_brand
    order.vin = _prompt("VIN (optional): ") or None
    if d.info_sources:
        for s in d.info_sources:
            print(f"  #{s.id} {s.name}")
        info_in = _prompt("info source id (optional): ")
        if info_in:
            order.info_source = select_by_id(d.info_sources, int(info_in))
    date_in = _prompt("execution date (YYYY-MM-DD HH:MM): ")
    order.execution_date = parse_datetime(date_in.replace(" ", "T")) if date_in else None
    order.order_cost = to_decimal(_prompt("order cost: "))
    order.execution_time_by_master = _prompt("estimated labor time (optional): ") or None

    while True:
        add = _prompt("Add work? (y/n): ").lower()
        if add != "y":
            break
        for wt in d.work_types:
            print(f"  #{wt.id} {wt.name}")
        work_type_id = int(_prompt("  work type id: "))
        form.toggle_work_type(order, work_type_id, True)
        index = order.work_index(work_type_id)
        work = order.works[index]

        parts = form.parts_for(selected_or_none(work.work_type))
        if parts:
            for p in parts:
                print(f"    #{p.id} {p.name}")
            for part_id in _ids(_prompt("  part ids (comma separated, optional): ")):
                form.toggle_part(order, work_type_id, part_id, True)
        form.set_work_cost(order, index, _prompt("  work cost: "))
        form.set_work_comment(order, index, _prompt("  comment (optional): ") or None)

        for m in d.masters:
            print(f"    #{m.id} {m.full_name}")
        for master_id in _ids(_prompt("  master ids (comma separated, optional): ")):
            form.toggle_master(order, index, master_id, True)
            form.set_salary_percent(order, index, master_id, _prompt(f"  salary % for master #{master_id}: "))
        for a in work.assignments:
            master = selected_or_none(a.master)
            print(f"    {master.full_name}: {a.earning(work.cost)}")

    order_id = form.submit(order)
    print(f"Created order_id={order_id}")


def run_cli(api: Api, identity: Identity, *, event_duration: timedelta) -> None:
    order_repo = OrderRepository()
    dictionary_repo = DictionaryRepository()
    user_repo = UserRepository()
    report_repo = ReportRepository()
    dictionary_service = DictionaryService(dictionary_repo)

    if identity.restore():
        print(f"Welcome back, {identity.user.full_name}")

    while True:
        print("\n=== Detailing Desk CLI ===")
        print("1) Login")
        print("2) Calendar (this week)")
        print("3) Create order")
        print("4) Change order status")
        print("5) Weekly masters report")
        print("6) Master detail report")
        print("7) Import work types JSON")
        print("8) Logout")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                user = identity.authenticate(_prompt("username: "), _prompt("password: "))
                print(f"Logged in as {user.full_name} ({', '.join(sorted(user.role_names))})")
                continue

            elif choice == "8":
                identity.logout()
                print("Logged out.")
                continue

            if not identity.is_authenticated:
                print("Please log in first.")
                continue

            with api.session(identity.token) as s:
                if choice == "2":
                    start, end = week_range(datetime.now())
                    events = fetch_events(
                        s,
                        order_repo,
                        start=start,
                        end=end + timedelta(seconds=1),
                        filters=default_filters(identity),
                        duration=event_duration,
                    )
                    for ev in events:
                        print(
                            f"#{ev.id} {ev.start:%d.%m %H:%M}-{ev.end:%H:%M} {ev.title} "
                            f"[{STATUS_LABELS.get(ev.status, ev.status)}] {', '.join(ev.work_types)}"
                        )
                    if not events:
                        print("No orders this week.")

                elif choice == "3":
                    form = OrderFormSession(
                        s,
                        order_repo=order_repo,
                        dictionary_repo=dictionary_repo,
                        user_repo=user_repo,
                    )
                    try:
                        _create_order(form)
                    finally:
                        form.close()

                elif choice == "4":
                    order_id = int(_prompt("order_id: "))
                    order = order_repo.get(s, order_id)
                    options = available_transitions(order.status)
                    print(f"Current status: {STATUS_LABELS.get(order.status, order.status)}")
                    if not options:
                        print("No status changes available.")
                        continue
                    print("Available: " + ", ".join(options))
                    code = _prompt("new status: ").upper()
                    master_id = identity.user.id if identity.is_master_only else None
                    request_status_change(
                        s,
                        order_repo,
                        order_id=order_id,
                        current_status=order.status,
                        code=code,
                        master_id=master_id,
                    )
                    print("Status change requested.")

                elif choice == "5":
                    start, end = week_range(datetime.now())
                    _print_table(weekly_summary(report_repo.masters_weekly(s, start=start, end=end)))

                elif choice == "6":
                    master_id = identity.user.id if identity.is_master_only else int(_prompt("master_id: "))
                    start, end = week_range(datetime.now())
                    report = report_repo.master_detail(s, master_id, start=start, end=end)
                    print(f"{report.master_first_name} {report.master_last_name}")
                    _print_table(master_detail(report))

                elif choice == "7":
                    path = _prompt("path to work_types.json: ")
                    n = import_work_types_json(s, path, dictionary_service)
                    print(f"Imported/updated work types: {n}")

                else:
                    print("Unknown choice.")

        except ValidationError as e:
            for path, msg in e.errors.items():
                print(f"[INPUT ERROR] {path}: {msg}")
        except DataImportError as e:
            print(f"[IMPORT ERROR] {e}")
        except ApiError as e:
            print(f"[API ERROR] {e}")
            if e.is_unauthorized:
                identity.logout()
                print("Session expired, please log in again.")
        except ValueError as e:
            print(f"[VALUE ERROR] {e}")
        except Exception as e:
            print(f"[ERROR] {type(e).__name__}: {e}")
