import re

filenames = [
  "src/protcon/spatial.py",
  "src/protcon/protein.py",
  "src/protcon/rotamers.py",
  "src/protcon/contacts.py",
  "src/protcon/algos/condeg.py",
  # "src/protcon/log.py",
]

print()  #  required

for filename in filenames:
  module_doc_start = False
  module_doc_end = False
  with open(filename) as f:
    # get import path
    filename_clean = filename[4:-3].split("/")
    import_statement = f"from {'.'.join(filename_clean[:-1])} import {filename_clean[-1]}"
    # print module title
    print(f"### {filename_clean[-1].upper()} MODULE")

    func = None
    for line in f:
      # get module doc
      if module_doc_start == False and line.strip() == '"""':
        module_doc_start = True
      elif module_doc_start == True and module_doc_end == False and line.strip() == '"""':
        module_doc_end = True
      elif module_doc_start == True and module_doc_end == False:
        print(line)

      # public module level function doc
      match = re.search(r"^def ([^_].*)\:", line)
      if match:
        func = match.group(1)
        desc = ""
        doc_open = False
        section = None
        params = []
        returns = []
      elif func is None:
        continue
      elif not doc_open and line.strip().startswith('"""'):
        doc_open = True
        desc = line.strip().strip('"') + " "
        if line.strip().endswith('"""') and len(line.strip()) > 3:
          doc_open = None
      elif doc_open and line.strip() == '"""':
        doc_open = None
        print(f"#### {func.split('(')[0]}")
        print(f"```py\n{import_statement}\n{filename_clean[-1]}.{func}\n```")
        print("##### Description:")
        print(desc.strip())
        if params:
          print("##### Parameters:")
          for x in params:
            t, d = x.split(":", 1)
            print(f"- **{t.strip('.')}**: {d}")
        if returns:
          print("##### Returns:")
          for x in returns:
            print(f"- {x}")
        print()
        func = None
      elif doc_open:
        if line.strip() == "Parameters:":
          section = "params"
        elif line.strip() == "Returns:":
          section = "returns"
        elif not line.strip():
          continue
        elif section == "params" and ":" in line:
          params.append(line.strip())
        elif section == "returns":
          returns.append(line.strip())
        elif section is None:
          desc += line.strip() + " "
