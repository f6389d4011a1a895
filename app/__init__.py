"""
NapKeeper - Back office de asignación de puertos NAP con bitácora de auditoría
"""
