"""
Medication Safety Engine
Drug-drug and drug-allergy checks on the prescribing path
"""
__version__ = "1.0.0"
