# -------- Aliases (clarify intent) --------
UnixMillis = int
Symbol = str
