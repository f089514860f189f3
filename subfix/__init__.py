"""SubFix - corrects machine-generated subtitles against a reference transcript
using the Gemini text-generation API."""

__version__ = "0.1.0"
