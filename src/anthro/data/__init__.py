"""Bundled CDC/WHO LMS reference tables (Sex,Agemos,L,M,S)."""
