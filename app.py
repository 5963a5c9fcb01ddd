# file: app.py
from __future__ import annotations

import logging
from pathlib import PurePosixPath

import pandas as pd
import streamlit as st

from tiss_editor import __version__ as EDITOR_VERSION
from tiss_editor.epilogo import validate_hash
from tiss_editor.errors import TissError
from tiss_editor.guides import extract_guides_result, extract_lot_number
from tiss_editor.logging_config import configure_logging, level_from_env
from tiss_editor.pipeline import (
    MAX_FILE_SIZE,
    check_size,
    decode_xml_bytes,
    encode_xml_text,
    process_xml,
    process_zip,
    zip_single_xml,
)
from tiss_editor.profiles import load_config, rules_for_profile
from tiss_editor.report import df_display_currency, format_currency_br, guides_dataframe, guides_to_excel, guides_total
from tiss_editor.session import MANUAL_ACTIONS, ManualSession
from tiss_editor.tiss_database import get_tag_info, search_cbos, search_procedure, search_tag
from tiss_editor.validator import Severity, find_empty_fields, validate_professional_data, validate_tiss_compliance
from tiss_editor.xml_model import format_xml

configure_logging(level=level_from_env())
logger = logging.getLogger("tiss_editor.app")

# =========================================================
# Config & Header
# =========================================================
st.set_page_config(page_title="Editor TISS XML (SP-SADT)", layout="wide")
st.title("Editor e Validador de XML TISS (SP-SADT)")
st.caption(f"Correções automáticas, exclusão de guias, hash MD5 do epílogo e validação • Editor {EDITOR_VERSION}")

tab_auto, tab_manual = st.tabs(["Modo automático", "Modo manual"])

MIME_XML = "application/xml"
MIME_ZIP = "application/zip"
MIME_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _show_finding(f) -> None:
    if f.severity is Severity.ERROR:
        st.error(str(f))
    elif f.severity is Severity.WARNING:
        st.warning(str(f))
    else:
        st.success(str(f))


def _show_findings(xml_content: str) -> None:
    try:
        findings = validate_tiss_compliance(xml_content)
    except TissError as e:
        st.error(f"❌ {e}")
        return
    for f in findings:
        _show_finding(f)
    report = validate_hash(xml_content)
    (st.success if report.valid else st.warning)(report.message)


def _show_guides(guides, key: str) -> None:
    df = guides_dataframe(guides)
    st.dataframe(df_display_currency(df), use_container_width=True)
    st.caption(f"**{len(guides)}** guia(s) • Total: **{format_currency_br(guides_total(guides))}**")
    if guides:
        st.download_button(
            "Baixar guias (Excel)",
            data=guides_to_excel(guides),
            file_name="guias_tiss.xlsx",
            mime=MIME_XLSX,
            key=f"excel_{key}",
        )


# =========================================================
# Modo automático
# =========================================================
with tab_auto:
    config = load_config()
    profile_names = ["(sem perfil)"] + [p.name for p in config.profiles]
    chosen = st.selectbox("Perfil de convênio", options=profile_names, key="auto_profile")
    profile = next((p for p in config.profiles if p.name == chosen), None)
    rules = rules_for_profile(profile, config) if profile else []
    if profile:
        st.caption(f"Formato de saída: {profile.output_format.upper()} • {len(rules)} regra(s) ativa(s)")

    upload = st.file_uploader(
        f"Selecione um XML TISS ou um ZIP com XMLs (máx. {MAX_FILE_SIZE // 1024 // 1024}MB)",
        type=['xml', 'zip'],
        key="auto_upload",
    )
    if upload is not None and st.button("Processar", type="primary", key="auto_btn"):
        data = upload.getvalue()
        try:
            if PurePosixPath(upload.name).suffix.lower() == '.zip':
                batch = process_zip(data, rules)
                st.success(f"{len(batch.files)} arquivo(s) processado(s) • {batch.changes} correção(ões) aplicada(s)")
                for name, error in batch.errors.items():
                    st.error(f"❌ {name}: {error}")
                _show_guides(batch.guides, "auto_zip")
                st.download_button("Baixar ZIP corrigido", data=batch.content,
                                   file_name=f"corrigido_{upload.name}", mime=MIME_ZIP)
            else:
                check_size(data)
                result = process_xml(decode_xml_bytes(data), rules)
                st.success(f"{result.changes} correção(ões) aplicada(s)")
                st.table(pd.DataFrame(result.log, columns=["Etapa", "Correções"]))
                if not result.sealed:
                    st.warning("Epílogo não inserido: documento sem ans:prestadorParaOperadora/ans:tissLoteGuias.")
                _show_guides(result.guides, "auto_xml")
                if profile and profile.output_format == 'xml':
                    st.download_button("Baixar XML corrigido", data=encode_xml_text(result.content),
                                       file_name=upload.name, mime=MIME_XML)
                else:
                    st.download_button("Baixar ZIP corrigido", data=zip_single_xml(upload.name, result.content),
                                       file_name=f"{PurePosixPath(upload.name).stem}.zip", mime=MIME_ZIP)
        except TissError as e:
            logger.error("Falha no processamento automático de %s: %s", upload.name, e)
            st.error(f"❌ {e}")

# =========================================================
# Modo manual
# =========================================================
if 'manual' not in st.session_state:
    st.session_state.manual = None


def _tag_assistant() -> None:
    query = st.text_input("Buscar tag, CBOS ou procedimento", key="assistant_query").strip()
    if not query:
        st.caption("Ex.: CBOS, tipoAtendimento, 225125, 40901475")
        return
    info = get_tag_info(query)
    tags = [info] if info else search_tag(query)
    for t in tags:
        obrig = "obrigatória" if t.required else "opcional"
        st.markdown(f"**`<{t.tag}>`** {t.name} ({obrig}, nível {t.level})  \n{t.description}"
                    + (f"  \nEx.: `{t.example}`" if t.example else ""))
    cbos = search_cbos(query)
    if cbos:
        st.markdown("**CBOS**")
        st.table(pd.DataFrame([(c.code, c.name, c.description) for c in cbos],
                              columns=["Código", "Ocupação", "Descrição"]))
    procedures = search_procedure(query)
    if procedures:
        st.markdown("**Procedimentos**")
        st.table(pd.DataFrame([(p.code, p.name, ", ".join(p.compatible_cbos)) for p in procedures],
                              columns=["Código", "Procedimento", "CBOS compatíveis"]))
    if not (tags or cbos or procedures):
        st.info("Nada encontrado.")


with tab_manual:
    manual_upload = st.file_uploader("Selecione um XML TISS", type=['xml'], key="manual_upload")
    session = st.session_state.manual
    if manual_upload is not None and (session is None or manual_upload.name != session.name):
        try:
            data = manual_upload.getvalue()
            check_size(data)
            session = ManualSession.open(manual_upload.name, decode_xml_bytes(data))
            st.session_state.manual = session
        except TissError as e:
            st.error(f"❌ {e}")

    if session is not None:
        xml_content = session.content
        try:
            extraction = extract_guides_result(xml_content)
        except TissError as e:
            st.error(f"❌ {e}")
            st.stop()
        if extraction.degraded:
            st.warning(f"⚠️ XML malformado, guias extraídas por aproximação: {extraction.reason}")
        lote = extract_lot_number(xml_content)
        st.subheader(f"Guias do lote {lote or 'N/A'}")
        _show_guides(extraction.guides, "manual")

        # Correções rápidas + desfazer
        cols = st.columns(len(MANUAL_ACTIONS) + 1)
        for col, action in zip(cols, MANUAL_ACTIONS):
            with col:
                if st.button(action, use_container_width=True, key=f"action_{action}"):
                    result = session.apply(action)
                    if result.changes:
                        st.toast(f"{action}: {result.changes} alteração(ões)")
                        st.rerun()
                    st.info(f"{action}: nenhuma alteração necessária.")
        with cols[-1]:
            if st.button("↩️ Desfazer", use_container_width=True, disabled=not session.can_undo, key="undo_btn"):
                session.undo()
                st.rerun()

        # Conferência de valores
        conf = session.conferencia()
        st.markdown("#### Conferência")
        k1, k2, k3 = st.columns(3)
        k1.metric("Total original", format_currency_br(conf.original_total))
        k2.metric("Total atual", format_currency_br(conf.current_total))
        k3.metric("Diferença", format_currency_br(conf.difference))
        if not conf.matches:
            st.warning("O total atual difere do arquivo original (guias excluídas ou valores alterados).")

        with st.expander("Excluir guia"):
            ids = [g.id for g in extraction.guides]
            guide_id = st.selectbox("Nº da guia", options=ids, key="delete_select") if ids else None
            if guide_id and st.button("Excluir guia selecionada", key="delete_btn"):
                session.remove_guide(guide_id)
                st.info("Guia excluída. Recalcule o hash antes de enviar.")
                st.rerun()

        with st.expander("Localizar e substituir"):
            find_text = st.text_input("Localizar", key="find_text")
            replace_text = st.text_input("Substituir por", key="replace_text")
            c1, c2 = st.columns(2)
            with c1:
                if st.button("Substituir próxima", use_container_width=True, key="replace_next_btn"):
                    if session.replace(find_text, replace_text):
                        st.rerun()
                    st.info("Texto não encontrado.")
            with c2:
                if st.button("Substituir todas", use_container_width=True, key="replace_all_btn"):
                    if session.replace(find_text, replace_text, every=True):
                        st.rerun()
                    st.info("Texto não encontrado.")

        with st.expander("🔎 Validação TISS"):
            _show_findings(xml_content)
            st.markdown("**Campos críticos**")
            _show_finding(find_empty_fields(xml_content))
            st.markdown("**Profissionais**")
            for f in validate_professional_data(xml_content):
                _show_finding(f)

        with st.expander("📖 Assistente TISS"):
            _tag_assistant()

        with st.expander("Visualizar XML"):
            st.code(format_xml(xml_content), language="xml")

        if st.button("Recalcular hash e baixar", type="primary", key="seal_btn"):
            report = session.reseal()
            if report.valid:
                st.success(report.message)
            else:
                st.warning(f"Epílogo não confirmado: {report.message}")
            st.download_button("Baixar XML", data=encode_xml_text(session.content),
                               file_name=session.name, mime=MIME_XML, key="manual_download")
