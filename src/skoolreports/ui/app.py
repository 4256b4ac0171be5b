from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict

import flet as ft

from skoolreports.config.settings import settings
from skoolreports.core.grading import parse_marks
from skoolreports.core.models import CLASS_NAMES, SUBJECT_NAMES, SUBJECTS
from skoolreports.services.repository import RepositoryError
from skoolreports.services.results_service import ResultsService, ResultsServiceError

logger = logging.getLogger(__name__)


def _class_dropdown(value: str | None = None) -> ft.Dropdown:
    return ft.Dropdown(
        label="Class",
        options=[ft.dropdown.Option(c) for c in CLASS_NAMES],
        value=value,
        width=160,
    )


class SkoolReportsApp:
    def __init__(self, page: ft.Page, service: ResultsService | None = None) -> None:
        self.page = page
        self.page.title = "SkoolReports"
        self.page.scroll = ft.ScrollMode.AUTO
        self.service = service or ResultsService.from_settings()

    def run(self) -> None:
        self.page.clean()

        pupils_container = ft.Container()
        marks_container = ft.Container()
        results_container = ft.Container()

        def refresh_all() -> None:
            pupils_container.content = self.pupils_view(refresh_all)
            marks_container.content = self.marks_view(refresh_all)
            results_container.content = self.results_view()
            self.page.update()

        tabs = ft.Tabs(
            selected_index=0,
            tabs=[
                ft.Tab(text="Pupils", content=pupils_container),
                ft.Tab(text="Marks Entry", content=marks_container),
                ft.Tab(text="Class Results", content=results_container),
            ],
            expand=1,
        )

        self.page.add(
            ft.Row(
                [
                    ft.Text(settings.school_name, size=28, weight=ft.FontWeight.BOLD),
                    ft.Text(settings.school_location),
                ],
                alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
            ),
            tabs,
        )
        refresh_all()

    def submit_pupil(self, name: str | None, class_name: str | None, marks, error: ft.Text, refresh_all) -> None:
        error.value = ""
        try:
            if not class_name:
                raise RepositoryError("Please select a class.")
            self.service.repository.add_pupil(name or "", class_name, marks)
        except RepositoryError as exc:
            error.value = str(exc)
            self.page.update()
            return
        refresh_all()

    def pupils_view(self, refresh_all) -> ft.Control:
        name = ft.TextField(label="Pupil Name", width=320)
        class_dd = _class_dropdown()
        mark_fields: Dict[str, ft.TextField] = {}
        teacher_fields: Dict[str, ft.TextField] = {}
        rows = []
        for subject in SUBJECTS:
            mark_fields[subject] = ft.TextField(label=f"{SUBJECT_NAMES[subject]} ({subject})", value="0", width=200)
            teacher_fields[subject] = ft.TextField(label="Teacher", width=200)
            rows.append(ft.Row([mark_fields[subject], teacher_fields[subject]]))
        error = ft.Text(color=ft.Colors.RED)

        def add_pupil(_: ft.ControlEvent) -> None:
            marks = {
                subject: (parse_marks(mark_fields[subject].value), teacher_fields[subject].value)
                for subject in SUBJECTS
            }
            self.submit_pupil(name.value, class_dd.value, marks, error, refresh_all)

        def delete_pupil(pupil_id: str) -> None:
            try:
                self.service.repository.delete_pupil(pupil_id)
            except RepositoryError as exc:
                logger.warning(f"Delete failed for {pupil_id}: {exc}")
            refresh_all()

        pupils = self.service.repository.list_pupils()
        list_view = ft.Column(
            [
                ft.Row(
                    [
                        ft.Text(f"{p.name} ({p.class_name}) • {len(p.marks)} of {len(SUBJECTS)} marks"),
                        ft.IconButton(icon=ft.Icons.DELETE, on_click=lambda _, pid=p.id: delete_pupil(pid)),
                    ],
                    alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                )
                for p in pupils
            ]
            or [ft.Text("No pupils yet")]
        )

        return ft.Column(
            [name, class_dd, *rows, ft.ElevatedButton("Add Pupil", on_click=add_pupil), error, ft.Divider(), list_view]
        )

    def marks_view(self, refresh_all) -> ft.Control:
        class_dd = _class_dropdown()
        grid = ft.Column()
        status = ft.Text()
        fields: Dict[tuple, ft.TextField] = {}

        def load_class(_=None) -> None:
            grid.controls.clear()
            fields.clear()
            if not class_dd.value:
                grid.controls.append(ft.Text("Please select a class to enter marks."))
                self.page.update()
                return
            pupils = self.service.repository.list_by_class(class_dd.value)
            if not pupils:
                grid.controls.append(ft.Text(f"No pupils found in {class_dd.value}."))
            for pupil in pupils:
                cells = [ft.Text(pupil.name, width=180)]
                for subject in SUBJECTS:
                    mark = pupil.mark_for(subject)
                    field = ft.TextField(label=subject, value=str(mark.marks) if mark else "", width=80)
                    fields[(pupil.id, subject)] = field
                    cells.append(field)
                grid.controls.append(ft.Row(cells))
            self.page.update()

        def save_marks(_: ft.ControlEvent) -> None:
            saved = 0
            try:
                for (pupil_id, subject), field in fields.items():
                    if field.value is None or not field.value.strip():
                        continue
                    self.service.repository.record_mark(pupil_id, subject, parse_marks(field.value))
                    saved += 1
                status.value = f"Marks for {class_dd.value} have been saved ({saved} entries)."
                status.color = ft.Colors.GREEN
                refresh_all()
            except RepositoryError as exc:
                status.value = str(exc)
                status.color = ft.Colors.RED
                self.page.update()

        class_dd.on_change = load_class
        grid.controls.append(ft.Text("Please select a class to enter marks."))
        return ft.Column([class_dd, grid, ft.ElevatedButton("Save Marks", on_click=save_marks), status])

    def results_view(self) -> ft.Control:
        class_dd = _class_dropdown()
        summary_text = ft.Text()
        error = ft.Text(color=ft.Colors.RED)
        table = ft.DataTable(
            columns=[
                ft.DataColumn(ft.Text("Position")),
                ft.DataColumn(ft.Text("Name")),
                *[ft.DataColumn(ft.Text(s)) for s in SUBJECTS],
                ft.DataColumn(ft.Text("Total Marks")),
                ft.DataColumn(ft.Text("Aggregate")),
                ft.DataColumn(ft.Text("Division")),
            ],
            rows=[],
        )

        def render(recalculate: bool) -> None:
            error.value = ""
            table.rows.clear()
            if not class_dd.value:
                self.page.update()
                return
            try:
                if recalculate:
                    self.service.calculate_class_results(class_dd.value)
                summary = self.service.class_summary(class_dd.value)
                pupils = self.service.class_results(class_dd.value)
            except (RepositoryError, ResultsServiceError) as exc:
                error.value = str(exc)
                self.page.update()
                return

            top = summary.top_performer
            summary_text.value = (
                f"{summary.total_pupils} pupils • average {summary.class_average:.1f} • "
                f"Division 1: {summary.division_counts['Division 1']} ({summary.division_1_percent}%) • "
                f"top: {top.name if top else '-'}"
            )
            for pupil in pupils:
                result = pupil.result
                cells = [
                    ft.DataCell(ft.Text(str(result.position) if result else "-")),
                    ft.DataCell(ft.Text(pupil.name)),
                ]
                for subject in SUBJECTS:
                    mark = pupil.mark_for(subject)
                    cells.append(ft.DataCell(ft.Text(f"{mark.marks} {mark.grade}" if mark else "-")))
                cells.extend(
                    [
                        ft.DataCell(ft.Text(str(result.total_marks) if result else "Not calculated")),
                        ft.DataCell(ft.Text(str(result.total_aggregate) if result else "Not calculated")),
                        ft.DataCell(ft.Text(result.division if result else "Not calculated")),
                    ]
                )
                table.rows.append(ft.DataRow(cells=cells))
            self.page.update()

        class_dd.on_change = lambda _: render(recalculate=False)

        return ft.Column(
            [
                ft.Row([class_dd, ft.ElevatedButton("Calculate Results", on_click=lambda _: render(recalculate=True))]),
                ft.Text(
                    "Pupils are ranked by total aggregate (lower is better); total marks break ties.",
                    size=12,
                ),
                summary_text,
                error,
                table,
                ft.Text(f"Generated {datetime.now().strftime('%d %B %Y')}", size=12),
            ]
        )


def main(page: ft.Page) -> None:
    SkoolReportsApp(page).run()
