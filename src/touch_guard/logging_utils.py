LEVELS = ['debug', 'info', 'warn', 'error']


def log(msg: str, level: str = 'info', *, cfg_level: str = 'info') -> None:
    if LEVELS.index(level) >= LEVELS.index(cfg_level):
        print(f'[{level.upper()}] {msg}', flush=True)
