"""Downloadable inventory import template (.xlsx)."""

from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import List, NamedTuple, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from mmstock.apps.products.models import ProductFormEnum


class TemplateColumn(NamedTuple):
    name: str
    required: bool
    description: str
    accepted: str = ""


_SHARED_HEAD = [
    TemplateColumn("Data", False, "Data do registo", "DD/MM/AAAA"),
    TemplateColumn("ID_MM", True, "Identificador único do produto", "Texto livre, ex.: MM-2026-001"),
    TemplateColumn("Tipo_pedra", True, "Tipo geral da pedra", "Mármore, Granito, Calcário"),
    TemplateColumn("Variedade", False, "Variedade específica da pedra", "Estremoz Clássico, Rosa Aurora"),
    TemplateColumn("Origem_bloco", False, "País ou pedreira de origem do bloco"),
    TemplateColumn("Parque_MM", True, "Código ou nome do parque (tem de existir)", "MM001, Estremoz"),
    TemplateColumn("Linha", False, "Posição interna no parque", "Linha, corredor ou fila"),
    TemplateColumn("Origem_material", False, "Origem do material", "adquirido, producao_propria"),
    TemplateColumn("Comprimento_cm", False, "Comprimento em centímetros", "Número"),
    TemplateColumn("Largura_cm", False, "Largura em centímetros", "Número"),
]

_SHARED_TAIL = [
    TemplateColumn("Nome_comercial", False, "Nome comercial, se diferente da variedade"),
    TemplateColumn("Quantidade", False, "Quantidade de unidades (omissão: 1)", "Número > 0"),
    TemplateColumn("Notas", False, "Observações, danos ou defeitos"),
    TemplateColumn("Foto1_URL", False, "URL da foto 1", "http:// ou https://"),
    TemplateColumn("Foto2_URL", False, "URL da foto 2", "http:// ou https://"),
    TemplateColumn("Foto3_URL", False, "URL da foto 3", "http:// ou https://"),
    TemplateColumn("Foto4_URL", False, "URL da foto 4", "http:// ou https://"),
]


def template_columns(form: ProductFormEnum) -> List[TemplateColumn]:
    if form == ProductFormEnum.BLOCK:
        middle = [
            TemplateColumn("Altura_cm", False, "Altura em centímetros", "Número"),
            TemplateColumn("Peso_ton", True, "Peso em toneladas (obrigatório para blocos)", "Número"),
        ]
    else:
        middle = [
            TemplateColumn("Espessura_cm", False, "Espessura em centímetros", "Número"),
            TemplateColumn("Peso_ton", False, "Peso em toneladas", "Número"),
        ]
    return _SHARED_HEAD + middle + _SHARED_TAIL


def _header_label(column: TemplateColumn) -> str:
    return f"{column.name}*" if column.required else column.name


_EXAMPLES = {
    ProductFormEnum.BLOCK: [
        ["03/02/2026", "MM-2026-001", "Mármore", "Estremoz Clássico", "Portugal", "MM001", "A-12",
         "adquirido", 280, 150, 120, 12.5, "Branco Neve Premium", 1, "Sem defeitos visíveis",
         "https://exemplo.com/mm-2026-001-frente.jpg", "", "", ""],
        ["03/02/2026", "MM-2026-002", "Mármore", "Ruivina", "Portugal", "MM005", "B-05",
         "producao_propria", 250, 140, 110, 10.2, "", 1, "", "", "", "", ""],
    ],
    ProductFormEnum.SLAB: [
        ["03/02/2026", "MM-2026-101", "Mármore", "Estremoz Clássico", "Portugal", "MM001", "C-01",
         "producao_propria", 300, 180, 2, 1.1, "Branco Estremoz", 24, "Polido numa face",
         "", "", "", ""],
    ],
    ProductFormEnum.TILE: [
        ["03/02/2026", "MM-2026-201", "Calcário", "Moleanos", "Portugal", "MM003", "D-07",
         "adquirido", 60, 60, 2, "", "Moleanos Amaciado", 120, "", "", "", "", ""],
    ],
}

_NOTES = [
    "Colunas marcadas com * são obrigatórias.",
    "A primeira linha da folha principal tem de conter os cabeçalhos.",
    "Produtos com ID_MM já existente recebem apenas o movimento de entrada.",
    "Dimensões também podem ser indicadas numa coluna 'Dimensoes' no formato 200x150x80.",
]


def _fit_columns(ws, labels: List[str], minimum: int = 15) -> None:
    for idx, label in enumerate(labels, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(len(label) + 2, minimum)


def build_template(form: ProductFormEnum, *, include_examples: bool = True) -> bytes:
    """Workbook with the main sheet, INSTRUCOES and (optionally) EXEMPLO."""
    columns = template_columns(form)
    labels = [_header_label(column) for column in columns]

    wb = Workbook()
    ws = wb.active
    ws.title = f"INVENTARIO_{form.value.upper()}"
    ws.append(labels)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    ws.freeze_panes = "A2"
    _fit_columns(ws, labels)

    ws_help = wb.create_sheet("INSTRUCOES")
    ws_help.append(["Coluna", "Obrigatório", "Descrição", "Valores aceites"])
    for cell in ws_help[1]:
        cell.font = Font(bold=True)
    for column in columns:
        ws_help.append([column.name, "Sim" if column.required else "Não", column.description, column.accepted])
    ws_help.append([])
    for note in _NOTES:
        ws_help.append([note])
    for letter, width in zip("ABCD", (25, 12, 50, 40)):
        ws_help.column_dimensions[letter].width = width

    if include_examples:
        ws_example = wb.create_sheet("EXEMPLO")
        ws_example.append(labels)
        for example in _EXAMPLES[form]:
            ws_example.append(example)
        _fit_columns(ws_example, labels)

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def template_filename(form: ProductFormEnum, today: Optional[date] = None) -> str:
    return f"modelo-importacao-{form.value}-{(today or date.today()).isoformat()}.xlsx"
