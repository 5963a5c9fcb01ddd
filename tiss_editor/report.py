# file: tiss_editor/report.py
from __future__ import annotations

import io
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, List

import pandas as pd

from .guides import Guide

CURRENCY_NUMBER_FORMAT = 'R$ #,##0.00'

# Colunas da tabela de guias (rótulo exibido -> campo do Guide)
GUIDE_COLUMNS = {
    'Nº Guia Prestador': 'numero_guia_prestador',
    'Nº Carteira': 'numero_carteira',
    'Profissional': 'nome_profissional',
    'Data Execução': 'data_execucao',
    'Valor Total': 'valor_total_geral',
}
CURRENCY_COLUMNS = ('Valor Total',)


def format_currency_br(val) -> str:
    """
    Converte número em string 'R$ 1.234,56'.
    - Valores None/NaN/Inf/Inválidos -> 'R$ 0,00'
    - Mantém sinal negativo com prefixo '-'
    """
    try:
        v = Decimal(str(val))
    except (InvalidOperation, ValueError):
        v = Decimal('0')
    if not v.is_finite():
        v = Decimal('0')
    v = v.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    neg = v < 0
    inteiro, centavos = f'{abs(v):.2f}'.split('.')
    inteiro_fmt = f'{int(inteiro):,}'.replace(',', '.')
    s = f'R$ {inteiro_fmt},{centavos}'
    return f'-{s}' if neg else s


def guides_total(guides: Iterable[Guide]) -> Decimal:
    return sum((g.valor_total_geral for g in guides), Decimal('0'))


def guides_dataframe(guides: Iterable[Guide]) -> pd.DataFrame:
    """Uma linha por guia, valores numéricos (float) para ordenação/exportação."""
    rows: List[dict] = []
    for g in guides:
        row = {label: getattr(g, attr) for label, attr in GUIDE_COLUMNS.items()}
        row['Valor Total'] = float(g.valor_total_geral)
        rows.append(row)
    return pd.DataFrame(rows, columns=list(GUIDE_COLUMNS))


def df_display_currency(df: pd.DataFrame, cols=CURRENCY_COLUMNS) -> pd.DataFrame:
    dfd = df.copy()
    for c in cols:
        if c in dfd.columns:
            dfd[c] = dfd[c].apply(format_currency_br)
    return dfd


def guides_to_excel(guides: Iterable[Guide], sheet_name: str = 'Guias') -> bytes:
    df = guides_dataframe(guides)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
        ws = writer.sheets[sheet_name]
        headers = {ws.cell(row=1, column=c).value: c for c in range(1, ws.max_column + 1)}
        for col_name in CURRENCY_COLUMNS:
            if col_name in headers:
                col_idx = headers[col_name]
                for r in range(2, ws.max_row + 1):
                    ws.cell(row=r, column=col_idx).number_format = CURRENCY_NUMBER_FORMAT
    return buffer.getvalue()


def guides_to_csv(guides: Iterable[Guide]) -> bytes:
    """CSV ';' com vírgula decimal (abre direto no Excel pt-BR)."""
    df = guides_dataframe(guides)
    return df.to_csv(index=False, sep=';', decimal=',').encode('utf-8-sig')
