"""Template module — analyze, compile, extract, render, and parse front-matter."""

from codefactory.template.analyzer import LiteralBlock, LoopBlock, ParamBlock, analyze
from codefactory.template.compiler import ExtractionRule, RuleSet, compile_block, compile_rules
from codefactory.template.extract import extract
from codefactory.template.frontmatter import parse_frontmatter

__all__ = [
    "LiteralBlock",
    "LoopBlock",
    "ParamBlock",
    "analyze",
    "ExtractionRule",
    "RuleSet",
    "compile_block",
    "compile_rules",
    "extract",
    "parse_frontmatter",
]
