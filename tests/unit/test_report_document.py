"""Unit tests for the ReportDocument builder."""

import re

import pytest
from jinja2 import TemplateNotFound

from figreport.contexts.composing.document import ReportDocument
from figreport.contexts.composing.exceptions import DocumentStateError
from figreport.contexts.composing.registries import TEMPLATES_PATH, TemplateRegistry


def _grid_report(num_figures=7, columns=3, standalone=False, legends=()):
    if standalone:
        report = ReportDocument.standalone_report("grid", 7.5, 4.0)
    else:
        report = ReportDocument("grid")
    files = [f"figs/f{i}.png" for i in range(num_figures)]
    titles = [f"t{i}" for i in range(num_figures)]
    report.add_figure_grid(files, titles, list(legends), "Overall caption", columns)
    return report


@pytest.mark.unit
def test_normal_preamble():
    """Test the normal report preamble sets margins and the main font."""
    report = ReportDocument("summary", main_font="Helvetica", font_path=None)
    text = report.text

    assert text.startswith("\n\\documentclass[8pt]{extarticle}\n")
    assert "\\setmainfont{Helvetica}\n" in text
    assert "\\usepackage[controls,loop]{animate}" in text
    assert "\\usepackage[left=0.7in,right=0.7in,top=0.7in,bottom=0.7in]{geometry}" in text
    assert "\\setlength{\\tabcolsep}{0pt}" in text
    assert text.endswith("\\begin{document}\n")
    assert "paperwidth" not in text
    assert report.standalone is False


@pytest.mark.unit
def test_standalone_preamble_declares_exact_page_size():
    """Test a standalone report fixes paper size and drops headers and page numbers."""
    report = ReportDocument.standalone_report("fig", 4.0, 3.5)
    text = report.text

    assert (
        "\\usepackage[noheadfoot,nomarginpar,margin=0pt,"
        "paperwidth=4.000000in,paperheight=3.500000in]{geometry}"
    ) in text
    assert "\\pagestyle{empty}" in text
    assert "\\parindent=0pt" in text
    assert "0.7in" not in text
    assert report.standalone is True


@pytest.mark.unit
def test_font_path_option():
    """Test an explicit font directory is passed to fontspec."""
    report = ReportDocument("fonts", main_font="Helvetica", font_path="/opt/fonts/")
    assert "\\setmainfont[Path=/opt/fonts/,UprightFont=*]{Helvetica}" in report.text


@pytest.mark.unit
@pytest.mark.parametrize("width, height", [(None, 3.0), (4.0, None), (0, 3.0), (4.0, -1.0)])
def test_standalone_requires_positive_size(width, height):
    with pytest.raises(ValueError):
        ReportDocument("fig", standalone=True, paper_width=width, paper_height=height)


@pytest.mark.unit
def test_figure_grid_rows_and_labels():
    """Test 7 figures in 3 columns give rows of 3, 3 and 1 with labels A..G."""
    text = _grid_report().text

    assert "\\begin{tabular}{ccc}\n" in text
    assert text.count("\\includegraphics[width=0.333333\\textwidth]") == 7
    assert re.findall(r"\(([A-Z]+)\) t\d", text) == list("ABCDEFG")

    first_rows = (
        "\\includegraphics[width=0.333333\\textwidth]{figs/f0.png} &\n"
        "\\includegraphics[width=0.333333\\textwidth]{figs/f1.png} &\n"
        "\\includegraphics[width=0.333333\\textwidth]{figs/f2.png} \\\\\n"
        "(A) t0 &\n"
        "(B) t1 &\n"
        "(C) t2 \\\\\n"
    )
    last_row = (
        "\\includegraphics[width=0.333333\\textwidth]{figs/f6.png} \\\\\n"
        "(G) t6 \\\\\n"
        "\\end{tabular}\n"
    )
    assert first_rows in text
    assert last_row in text


@pytest.mark.unit
def test_figure_grid_legends_and_numbered_caption():
    """Test legends follow the grid and a normal report uses a numbered caption."""
    text = _grid_report(legends=["figs/legend_a.png", "figs/legend_b.png"]).text

    assert (
        "\\end{tabular}\n"
        "\\includegraphics[width=0.490000\\textwidth]{figs/legend_a.png}\n"
        "\\includegraphics[width=0.490000\\textwidth]{figs/legend_b.png}\n"
        "\\\\\n"
        "\\end{center}\n"
        "\\caption{Overall caption}\n"
        "\\end{figure}\n"
    ) in text
    assert "\\caption*" not in text


@pytest.mark.unit
def test_standalone_uses_unnumbered_captions():
    """Test every caption in a standalone report is the unnumbered form."""
    report = _grid_report(standalone=True)
    report.add_plot("plots/p.png", "Plot caption")
    report.add_animation("frames/f", 3, "Anim caption", 10)
    text = report.text

    assert "\\caption*{Overall caption}" in text
    assert "\\caption*{Plot caption}" in text
    assert "\\caption*{Anim caption}" in text
    assert "\\caption{" not in text


@pytest.mark.unit
def test_figure_grid_single_column():
    """Test one column puts each figure on its own row at full width."""
    text = _grid_report(num_figures=3, columns=1).text

    assert "\\begin{tabular}{c}\n" in text
    assert text.count("\\includegraphics[width=1.000000\\textwidth]") == 3
    assert " &\n" not in text


@pytest.mark.unit
def test_figure_grid_past_26_figures():
    """Test labels keep going past Z instead of failing."""
    text = _grid_report(num_figures=28, columns=4).text
    assert "(Z) t25" in text
    assert "(AA) t26" in text
    assert "(AB) t27" in text


@pytest.mark.unit
def test_figure_grid_rejects_mismatched_titles():
    report = ReportDocument("bad")
    with pytest.raises(ValueError, match="titles"):
        report.add_figure_grid(["a.png", "b.png"], ["only one"], [], "caption", 2)


@pytest.mark.unit
def test_figure_grid_rejects_zero_columns():
    report = ReportDocument("bad")
    with pytest.raises(ValueError):
        report.add_figure_grid(["a.png"], ["a"], [], "caption", 0)


@pytest.mark.unit
def test_animation_frame_range():
    """Test animations span zero-padded frames 0000 to num_frames-1."""
    report = ReportDocument("anim")
    report.add_animation("frames/t_", 120, "Hourly temperature", 15)

    assert (
        "\\begin{figure}[H]\n"
        "\\animategraphics[width=\\textwidth]{15}{frames/t_}{0000}{0119}\n"
        "\\caption{Hourly temperature}\n"
        "\\end{figure}\n"
    ) in report.text


@pytest.mark.unit
@pytest.mark.parametrize("num_frames, fps", [(0, 15), (5, 0)])
def test_animation_rejects_empty_sequences(num_frames, fps):
    report = ReportDocument("anim")
    with pytest.raises(ValueError):
        report.add_animation("frames/t_", num_frames, "caption", fps)


@pytest.mark.unit
def test_plot():
    report = ReportDocument("plot")
    report.add_plot("plots/timeseries.png", "Domain mean")

    assert (
        "\\begin{figure}[H]\n"
        "\\includegraphics{plots/timeseries.png}\n"
        "\\caption{Domain mean}\n"
        "\\end{figure}\n"
    ) in report.text


@pytest.mark.unit
def test_fragments_keep_insertion_order():
    report = ReportDocument("order")
    report.add_plot("first.png", "first")
    report.add_animation("second_", 2, "second", 5)
    report.add_plot("third.png", "third")
    text = report.text

    assert text.index("first.png") < text.index("second_") < text.index("third.png")


@pytest.mark.unit
def test_finalize_closes_document():
    """Test finalize appends end{document} and blocks further changes."""
    report = ReportDocument("final")
    report.add_plot("p.png", "p")
    report.finalize()

    assert report.is_finalized
    assert report.text.endswith("\n\\end{document}\n")

    with pytest.raises(DocumentStateError):
        report.add_plot("q.png", "q")
    with pytest.raises(DocumentStateError):
        report.add_figure_grid(["a.png"], ["a"], [], "c", 1)
    with pytest.raises(DocumentStateError):
        report.add_animation("f_", 2, "c", 5)
    with pytest.raises(DocumentStateError):
        report.finalize()


@pytest.mark.unit
def test_empty_file_name_rejected():
    with pytest.raises(ValueError):
        ReportDocument("")


@pytest.mark.unit
def test_template_registry_caching():
    """Test fragment templates are cached after first load."""
    registry = TemplateRegistry()
    assert registry.templates_path == TEMPLATES_PATH

    template1 = registry.get_template("plot")
    assert registry.is_cached("plot")
    template2 = registry.get_template("plot")
    assert template1 is template2

    registry.clear_cache()
    assert not registry.is_cached("plot")


@pytest.mark.unit
def test_template_registry_missing_fragment():
    registry = TemplateRegistry()
    with pytest.raises(TemplateNotFound):
        registry.get_template("nonexistent_fragment")
    assert registry.get_template_path("plot").name == "plot.tex.jinja"
