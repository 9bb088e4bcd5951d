"""securekdf test suite."""
