class BuildProgress:
    def __init__(self, progress, n_steps, fmt, *args):
        self.progress = progress
        self.top_task = self.add_task(n_steps, fmt, *args)
        self.current_task = None

    def format(self, fmt, *args):
        args = tuple(['[blue]%s[/blue]' % arg for arg in args])
        return fmt % args

    def next_phase(self, fmt, *args):
        description = self.format(fmt, *args)
        self.progress.update(
            self.top_task, description = description, advance = 1)

    def next_steps(self, advance, fmt, *args):
        self.advance_task(self.current_task, advance, fmt, *args)

    def set_current_task(self, total, fmt, *args):
        self.current_task = self.add_task(total, fmt, *args)

    # Internal
    def add_task(self, total, fmt, *args):
        name = self.format(fmt, *args)
        return self.progress.add_task(name = name,
                                      total = total,
                                      description = '')

    def advance_task(self, task, advance, fmt, *args):
        description = self.format(fmt, *args)
        self.progress.update(
            task, description = description, advance = advance)
